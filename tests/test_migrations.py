from pathlib import Path

from alembic import command
from alembic.config import Config
import sqlalchemy as sa

import turnboard.config as app_config
from turnboard.models.models import Turn, Unit

ROOT = Path(__file__).resolve().parents[1]


def _alembic_config(db_url, monkeypatch):
    monkeypatch.setattr(app_config.settings, "database_url", db_url, raising=False)
    config = Config(str(ROOT / "turnboard" / "alembic.ini"))
    config.set_main_option("script_location", str(ROOT / "turnboard" / "migrations"))
    return config


def test_baseline_creates_every_table(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path / 'migrations.db'}"
    config = _alembic_config(db_url, monkeypatch)

    command.upgrade(config, "head")

    engine = sa.create_engine(db_url)
    try:
        inspector = sa.inspect(engine)
        tables = set(inspector.get_table_names())
        assert {"units", "turns", "vendors", "users", "calendar_events", "activities"} <= tables
        turn_columns = {column["name"] for column in inspector.get_columns("turns")}
        assert {"open_unit_id", "version", "checklist", "progress_percentage"} <= turn_columns

        with sa.orm.Session(engine) as session:
            session.query(Unit).all()
            session.query(Turn).all()
    finally:
        engine.dispose()


def test_downgrade_drops_application_tables(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path / 'migrations.db'}"
    config = _alembic_config(db_url, monkeypatch)
    command.upgrade(config, "head")

    command.downgrade(config, "base")

    engine = sa.create_engine(db_url)
    try:
        assert set(sa.inspect(engine).get_table_names()) <= {"alembic_version"}
    finally:
        engine.dispose()
