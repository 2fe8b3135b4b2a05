import pytest

from turnboard.constants import DEFAULT_ROLE_PERMISSIONS
from turnboard.services import users as user_service


@pytest.fixture
def add_user(db_session):
    def _add(uid, role="Technician", **overrides):
        payload = {"email": f"{uid}@example.com", "display_name": uid.title(), "role": role}
        payload.update(overrides)
        result = user_service.create_user_profile(db_session, uid, payload)
        assert result.success, result.error
        return result.data

    return _add


def test_profile_gets_role_defaults(db_session, add_user):
    user = add_user("terry")

    assert user["permissions"] == DEFAULT_ROLE_PERMISSIONS["Technician"]
    assert user["notification_settings"] == {
        "email_notifications": True,
        "push_notifications": True,
        "sms_notifications": False,
    }
    assert user["total_turns_completed"] == 0


def test_explicit_permissions_are_kept(db_session, add_user):
    user = add_user("vic", role="Viewer", permissions=["reports:read"])

    assert user["permissions"] == ["reports:read"]
    assert user_service.check_user_permission(db_session, "vic", "reports:read").data == {"has_permission": True}
    assert user_service.check_user_permission(db_session, "vic", "turns:write").data == {"has_permission": False}


def test_duplicate_profile_is_refused(db_session, add_user):
    add_user("terry")

    result = user_service.create_user_profile(db_session, "terry", {"email": "t@example.com", "display_name": "T"})

    assert result.error_code == "duplicate"


def test_role_changes_are_validated(db_session, add_user):
    add_user("terry")

    promoted = user_service.update_user_role(db_session, "terry", "Manager")
    refused = user_service.update_user_role(db_session, "terry", "Overlord")

    assert promoted.data["role"] == "Manager"
    assert refused.error_code == "invalid-role"
    assert user_service.get_user_profile(db_session, "terry").data["role"] == "Manager"


def test_notification_settings_merge(db_session, add_user):
    add_user("terry")

    result = user_service.update_notification_settings(db_session, "terry", {"sms_notifications": True})

    assert result.data["notification_settings"] == {
        "email_notifications": True,
        "push_notifications": True,
        "sms_notifications": True,
    }


def test_last_login_is_stamped(db_session, frozen_clock, add_user):
    add_user("terry")

    result = user_service.update_last_login(db_session, "terry")

    assert result.data["last_login_at"] == frozen_clock.now


def test_profile_update_cannot_change_role(db_session, add_user):
    add_user("terry")

    bio = user_service.update_user_profile(db_session, "terry", {"bio": "HVAC certified"})
    role = user_service.update_user_profile(db_session, "terry", {"role": "Admin"})

    assert bio.data["bio"] == "HVAC certified"
    assert role.error_code == "invalid-input"


def test_technician_listing_skips_inactive(db_session, add_user):
    add_user("terry")
    add_user("tess")
    add_user("morgan", role="Manager")
    user_service.deactivate_user(db_session, "tess")

    technicians = user_service.get_technicians(db_session)
    searched = user_service.search_users(db_session, "TE")

    assert [user["id"] for user in technicians.data] == ["terry"]
    assert [user["id"] for user in searched.data] == ["terry"]
    assert user_service.reactivate_user(db_session, "tess").data["active"] is True


def test_user_statistics(db_session, add_user):
    add_user("terry")
    add_user("tess")
    add_user("morgan", role="Manager")
    user_service.update_user_stats(db_session, "terry", 4, 3.0)
    user_service.update_user_stats(db_session, "tess", 2, 5.0)
    user_service.deactivate_user(db_session, "morgan")

    stats = user_service.get_user_statistics(db_session).data

    assert stats["total_users"] == 3
    assert stats["active_users"] == 2
    assert stats["inactive_users"] == 1
    assert stats["by_role"] == {"Technician": 2, "Manager": 1}
    assert stats["technician_stats"] == {"total": 2, "avg_turns_completed": 3.0, "avg_completion_time": 4.0}


def test_delete_profile(db_session, add_user):
    add_user("terry")

    assert user_service.delete_user_profile(db_session, "terry").success
    assert user_service.get_user_profile(db_session, "terry").error_code == "not-found"
