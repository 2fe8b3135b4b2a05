from datetime import timedelta

import pytest

from turnboard.services import units as unit_service


def test_vacant_unit_counts_days_since_it_emptied(db_session, frozen_clock, create_unit):
    unit = create_unit(unit_number="204", is_vacant=True)
    assert unit["vacant_since"] == frozen_clock.now
    assert unit["days_vacant"] == 0

    frozen_clock.advance(days=3)
    fetched = unit_service.get_unit_by_id(db_session, unit["id"])

    assert fetched.data["days_vacant"] == 3


def test_occupied_unit_never_carries_vacant_since(db_session, frozen_clock, create_unit):
    unit = create_unit(is_vacant=False, vacant_since=frozen_clock.now - timedelta(days=4))

    assert unit["vacant_since"] is None
    assert unit["days_vacant"] == 0


def test_update_ignores_caller_supplied_days_vacant(db_session, frozen_clock, create_unit):
    unit = create_unit(is_vacant=True)
    frozen_clock.advance(days=2)

    result = unit_service.update_unit(db_session, unit["id"], {"days_vacant": 40, "notes": "Carpet stained"})

    assert result.success, result.error
    assert result.data["notes"] == "Carpet stained"
    assert result.data["days_vacant"] == 0


def test_update_vacancy_recomputes_days(db_session, frozen_clock, create_unit):
    unit = create_unit(is_vacant=False)

    vacated = unit_service.update_unit(
        db_session, unit["id"], {"is_vacant": True, "vacant_since": frozen_clock.now - timedelta(days=5)}
    )
    assert vacated.data["days_vacant"] == 5

    occupied = unit_service.update_unit(db_session, unit["id"], {"is_vacant": False})
    assert occupied.data["vacant_since"] is None
    assert occupied.data["days_vacant"] == 0


def test_unit_numbers_are_unique(db_session, create_unit):
    create_unit(unit_number="12B")
    other = create_unit(unit_number="12C")

    duplicate = unit_service.create_unit(db_session, {"unit_number": "12B"})
    renamed = unit_service.update_unit(db_session, other["id"], {"unit_number": "12B"})

    assert duplicate.error_code == "duplicate"
    assert renamed.error_code == "duplicate"


def test_units_with_open_turns_refuse_occupancy_and_delete(db_session, frozen_clock, create_turn):
    turn = create_turn()

    attempts = [
        unit_service.update_unit(db_session, turn["unit_id"], {"is_vacant": False}),
        unit_service.mark_unit_vacant(db_session, turn["unit_id"]),
        unit_service.mark_unit_occupied(db_session, turn["unit_id"]),
        unit_service.delete_unit(db_session, turn["unit_id"]),
    ]

    assert [result.error_code for result in attempts] == ["invalid-state"] * 4
    assert unit_service.get_unit_by_id(db_session, turn["unit_id"]).data["current_turn_id"] == turn["id"]


@pytest.mark.parametrize("status", ["Ready", "Occupied", "Blocked"])
def test_unit_status_follows_open_turn(db_session, frozen_clock, create_turn, status):
    turn = create_turn()

    result = unit_service.update_unit(db_session, turn["unit_id"], {"status": status})
    unchanged = unit_service.update_unit(db_session, turn["unit_id"], {"status": "In Progress", "notes": "keys in box"})

    assert result.error_code == "invalid-state"
    assert unchanged.success, unchanged.error
    assert unit_service.get_unit_by_id(db_session, turn["unit_id"]).data["status"] == "In Progress"


@pytest.mark.parametrize("status", ["In Progress", "Blocked"])
def test_turn_statuses_need_a_turn(db_session, create_unit, status):
    unit = create_unit()

    updated = unit_service.update_unit(db_session, unit["id"], {"status": status})
    created = unit_service.create_unit(db_session, {"unit_number": "999", "status": status})

    assert updated.error_code == "invalid-state"
    assert created.error_code == "invalid-state"
    assert unit_service.get_unit_by_id(db_session, unit["id"]).data["status"] == "Ready"
    assert unit_service.update_unit(db_session, unit["id"], {"status": "Occupied"}).data["status"] == "Occupied"


def test_mark_unit_vacant_then_occupied(db_session, frozen_clock, create_unit):
    unit = create_unit()

    vacant = unit_service.mark_unit_vacant(db_session, unit["id"])
    assert vacant.data["is_vacant"] is True
    assert vacant.data["vacant_since"] == frozen_clock.now
    assert vacant.data["status"] == "Ready"

    occupied = unit_service.mark_unit_occupied(db_session, unit["id"])
    assert occupied.data["status"] == "Occupied"
    assert occupied.data["is_vacant"] is False
    assert occupied.data["vacant_since"] is None


def test_unit_statistics(db_session, frozen_clock, create_unit, create_turn):
    create_unit(is_vacant=True, vacant_since=frozen_clock.now - timedelta(days=4))
    occupied = create_unit()
    unit_service.mark_unit_occupied(db_session, occupied["id"])
    create_turn()

    stats = unit_service.get_units_statistics(db_session).data

    assert stats["total_units"] == 3
    assert stats["vacant_units"] == 2
    assert stats["occupied_units"] == 1
    assert stats["in_progress_units"] == 1
    assert stats["ready_units"] == 1
    assert stats["blocked_units"] == 0
    assert stats["avg_days_vacant"] == 2.0


def test_bulk_create_reports_partial_failure(db_session, create_unit):
    create_unit(unit_number="301")

    result = unit_service.create_bulk_units(
        db_session,
        [{"unit_number": "302"}, {"unit_number": "301"}, {"unit_number": ""}],
    )

    assert result.success is False
    assert result.error_code == "partial-failure"
    assert result.data["success_count"] == 1
    assert result.data["failure_count"] == 2
    assert [error["error_code"] for error in result.data["errors"]] == ["duplicate", "invalid-input"]
    assert unit_service.get_unit_by_number(db_session, "302").success


def test_bulk_create_all_succeed(db_session):
    result = unit_service.create_bulk_units(db_session, [{"unit_number": "401"}, {"unit_number": "402"}])

    assert result.success is True
    assert result.data["failure_count"] == 0


def test_refresh_all_vacant_unit_days(db_session, frozen_clock, create_unit):
    first = create_unit(is_vacant=True)
    create_unit(is_vacant=True)
    create_unit()
    frozen_clock.advance(days=2)

    result = unit_service.update_all_vacant_unit_days(db_session)

    assert result.success
    assert result.data["updated_count"] == 2
    db_session.expire_all()
    assert unit_service.get_unit_by_number(db_session, first["unit_number"]).data["days_vacant"] == 2


def test_list_filters_and_ordering(db_session, frozen_clock, create_unit):
    create_unit(unit_number="B2", is_vacant=True, vacant_since=frozen_clock.now - timedelta(days=1))
    create_unit(unit_number="A1", is_vacant=True, vacant_since=frozen_clock.now - timedelta(days=9))
    create_unit(unit_number="C3")

    vacant = unit_service.get_vacant_units(db_session)
    listed = unit_service.get_units(db_session, {"is_vacant": True, "order_by": "unit_number"})

    assert [unit["unit_number"] for unit in vacant.data] == ["A1", "B2"]
    assert [unit["unit_number"] for unit in listed.data] == ["A1", "B2"]


def test_invalid_list_options_are_rejected(db_session):
    unknown = unit_service.get_units(db_session, {"order_by": "rent"})
    bad_status = unit_service.get_units_by_status(db_session, "Demolished")

    assert unknown.error_code == "invalid-input"
    assert unknown.data == []
    assert bad_status.error_code == "invalid-input"


def test_get_missing_unit(db_session):
    assert unit_service.get_unit_by_id(db_session, "nope").error_code == "not-found"
    assert unit_service.get_unit_by_number(db_session, "999").error_code == "not-found"
