
import pytest
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from scripts import run_maintenance
from turnboard.services import activity as activity_service
from turnboard.services import units as unit_service


@pytest.fixture
def run(db_engine):
    factory = sessionmaker(bind=db_engine)

    def _run(*argv):
        return run_maintenance.main(list(argv), session_factory=factory)

    return _run


def test_recalculate_updates_open_turns(db_session, frozen_clock, create_turn, run, capsys):
    create_turn()
    create_turn()

    assert run("recalculate") == 0
    assert "Recalculated 2 open turns." in capsys.readouterr().out


def test_vacancy_refresh(db_session, frozen_clock, create_unit, run, capsys):
    unit = create_unit(is_vacant=True)
    frozen_clock.advance(days=4)

    assert run("vacancy") == 0
    db_session.expire_all()
    assert unit_service.get_unit_by_number(db_session, unit["unit_number"]).data["days_vacant"] == 4
    assert "Refreshed days vacant on 1 units." in capsys.readouterr().out


def test_prune_loops_until_batch_is_short(db_session, frozen_clock, technician, run, monkeypatch, capsys):
    monkeypatch.setattr(activity_service, "ACTIVITY_PRUNE_BATCH", 2)
    for index in range(5):
        activity_service.record_activity(db_session, technician, "note", "note.added", "unit", f"u-{index}")
    frozen_clock.advance(days=10)

    assert run("prune", "--days", "7") == 0
    assert "Deleted 5 activities older than 7 days." in capsys.readouterr().out
    assert activity_service.get_recent_activities(db_session).data == []


def test_drift_report_and_repair(db_session, frozen_clock, create_turn, run, capsys):
    turn = create_turn()
    db_session.execute(text("UPDATE units SET current_turn_id = NULL WHERE id = :id"), {"id": turn["unit_id"]})
    db_session.commit()

    assert run("drift") == 2
    assert "1 units with link drift." in capsys.readouterr().out

    assert run("drift", "--repair") == 0
    assert run("drift") == 0


def test_unknown_command_exits(run):
    with pytest.raises(SystemExit):
        run("explode")
