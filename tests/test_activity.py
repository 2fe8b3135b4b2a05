from datetime import timedelta

import pytest

from turnboard.auth.identity import Actor
from turnboard.models.models import Activity
from turnboard.services import activity as activity_service


def _log(db_session, actor, entity_id="turn-1", action_type="note.added", **extra):
    result = activity_service.record_activity(
        db_session,
        actor,
        f"{action_type} on {entity_id}",
        action_type,
        extra.pop("entity_type", "turn"),
        entity_id,
        **extra,
    )
    assert result.success, result.error
    return result.data


def test_log_activity_stamps_timestamp_when_missing(db_session, frozen_clock):
    result = activity_service.log_activity(
        db_session,
        {
            "action": "Added note",
            "action_type": "note.added",
            "entity_type": "unit",
            "entity_id": "unit-1",
            "metadata": {"note": "Keys returned"},
        },
    )

    assert result.success
    assert result.data["timestamp"] == frozen_clock.now
    assert result.data["metadata"] == {"note": "Keys returned"}
    assert result.data["user_id"] is None


def test_log_activity_keeps_supplied_timestamp(db_session, frozen_clock):
    stamp = frozen_clock.now - timedelta(days=1)
    result = activity_service.log_activity(
        db_session,
        {"action": "x", "action_type": "note.added", "entity_type": "unit", "entity_id": "u", "timestamp": stamp},
    )

    assert result.data["timestamp"] == stamp


def test_malformed_record_is_reported_not_raised(db_session):
    result = activity_service.log_activity(db_session, {"action": "x", "action_type": "made.up", "entity_type": "unit"})

    assert result.success is False
    assert result.error_code == "invalid-input"
    assert db_session.query(Activity).count() == 0


def test_recent_activities_are_newest_first(db_session, frozen_clock, technician):
    first = _log(db_session, technician, "turn-1")
    frozen_clock.advance(minutes=5)
    second = _log(db_session, technician, "turn-2")
    frozen_clock.advance(minutes=5)
    third = _log(db_session, technician, "turn-3")

    recent = activity_service.get_recent_activities(db_session, limit=2)

    assert [entry["id"] for entry in recent.data] == [third["id"], second["id"]]
    assert first["id"] not in {entry["id"] for entry in recent.data}


def test_filtered_queries(db_session, frozen_clock, technician, manager):
    _log(db_session, technician, "turn-1", action_type="task.completed")
    frozen_clock.advance(minutes=1)
    _log(db_session, manager, "turn-1", action_type="turn.blocked")
    frozen_clock.advance(minutes=1)
    _log(db_session, manager, "unit-9", entity_type="unit", action_type="unit.status_changed")

    by_entity = activity_service.get_activities_by_entity(db_session, "turn", "turn-1")
    by_user = activity_service.get_activities_by_user(db_session, "mgr-1")
    by_type = activity_service.get_activities(db_session, {"action_type": "task.completed"})

    assert [entry["action_type"] for entry in by_entity.data] == ["turn.blocked", "task.completed"]
    assert [entry["entity_id"] for entry in by_user.data] == ["unit-9", "turn-1"]
    assert [entry["user_id"] for entry in by_type.data] == ["tech-1"]


def test_get_activities_rejects_unknown_filters(db_session):
    result = activity_service.get_activities(db_session, {"severity": "high"})

    assert result.error_code == "invalid-input"
    assert result.data == []


def test_statistics_rank_top_users(db_session, frozen_clock, technician, manager):
    other = Actor(user_id="tech-2", user_name="Tess Two")
    for _ in range(3):
        _log(db_session, technician, action_type="task.completed")
    _log(db_session, manager, action_type="turn.created")
    _log(db_session, manager, entity_type="unit", entity_id="unit-1", action_type="unit.status_changed")
    _log(db_session, other, action_type="task.completed")

    stats = activity_service.get_activity_statistics(
        db_session, frozen_clock.now - timedelta(hours=1), frozen_clock.now + timedelta(hours=1)
    ).data

    assert stats["total"] == 6
    assert stats["by_action_type"] == {"task.completed": 4, "turn.created": 1, "unit.status_changed": 1}
    assert stats["by_entity_type"] == {"turn": 5, "unit": 1}
    assert stats["by_user"] == {"tech-1": 3, "mgr-1": 2, "tech-2": 1}
    assert stats["top_users"][0] == {"user_id": "tech-1", "user_name": "Terry Tech", "activity_count": 3}
    assert [entry["user_id"] for entry in stats["top_users"]] == ["tech-1", "mgr-1", "tech-2"]


def test_date_range_excludes_entries_outside_window(db_session, frozen_clock, technician):
    _log(db_session, technician, "old")
    frozen_clock.advance(days=2)
    recent = _log(db_session, technician, "new")

    result = activity_service.get_activities_by_date_range(
        db_session, frozen_clock.now - timedelta(days=1), frozen_clock.now
    )

    assert [entry["id"] for entry in result.data] == [recent["id"]]


def test_delete_activity_is_idempotent(db_session, frozen_clock, technician):
    entry = _log(db_session, technician)

    assert activity_service.delete_activity(db_session, entry["id"]).success
    assert activity_service.delete_activity(db_session, entry["id"]).success
    assert activity_service.get_activity_by_id(db_session, entry["id"]).error_code == "not-found"


def test_prune_deletes_one_batch_of_the_oldest_entries(db_session, frozen_clock, technician, monkeypatch):
    monkeypatch.setattr(activity_service, "ACTIVITY_PRUNE_BATCH", 2)
    for _ in range(3):
        _log(db_session, technician)
        frozen_clock.advance(minutes=1)
    frozen_clock.advance(days=100)
    keeper = _log(db_session, technician, "turn-keep")

    first = activity_service.delete_old_activities(db_session, days_to_keep=90)
    second = activity_service.delete_old_activities(db_session, days_to_keep=90)

    assert first.data["deleted_count"] == 2
    assert first.data["batch_size"] == 2
    assert second.data["deleted_count"] == 1
    assert [entry["id"] for entry in activity_service.get_recent_activities(db_session).data] == [keeper["id"]]


@pytest.mark.parametrize("days_to_keep", [90, 365])
def test_prune_keeps_entries_inside_retention(db_session, frozen_clock, technician, days_to_keep):
    _log(db_session, technician)
    frozen_clock.advance(days=30)

    result = activity_service.delete_old_activities(db_session, days_to_keep=days_to_keep)

    assert result.data["deleted_count"] == 0
    assert result.data["cutoff_date"] == (frozen_clock.now - timedelta(days=days_to_keep)).isoformat()
