import sys
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from turnboard.config import Base, enable_sqlite_savepoints  # noqa: E402
import turnboard.config as app_config  # noqa: E402
import turnboard.main as app_main  # noqa: E402
from turnboard.auth.identity import Actor  # noqa: E402
from turnboard.core import clock  # noqa: E402
# Import the full models module so every table registers with Base metadata.
from turnboard.models import models as _all_models  # noqa: E402,F401
from turnboard.services import turns as turn_service  # noqa: E402
from turnboard.services import units as unit_service  # noqa: E402

FROZEN_START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session", autouse=True)
def _configure_global_test_db(tmp_path_factory):
    """Point the app-wide engine at a throwaway database so nothing touches turnboard.db."""
    db_dir = tmp_path_factory.mktemp("globaldb")
    engine = create_engine(f"sqlite:///{db_dir / 'app.db'}", connect_args={"check_same_thread": False})
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    app_config.SessionLocal = SessionLocal
    app_config.engine = engine
    app_main.engine = engine
    yield
    engine.dispose()


@pytest.fixture
def db_engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Generator[Session, None, None]:
    """Provide a fresh SQLite database for each test."""
    session = sessionmaker(bind=db_engine)()
    try:
        yield session
    finally:
        session.close()


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture
def frozen_clock(monkeypatch) -> FrozenClock:
    frozen = FrozenClock(FROZEN_START)
    monkeypatch.setattr(clock, "utcnow", frozen)
    return frozen


@pytest.fixture
def technician() -> Actor:
    return Actor(user_id="tech-1", user_name="Terry Tech", user_role="Technician")


@pytest.fixture
def manager() -> Actor:
    return Actor(user_id="mgr-1", user_name="Morgan Manager", user_role="Manager")


@pytest.fixture
def create_unit(db_session: Session) -> Callable[..., Dict[str, Any]]:
    counter = {"value": 100}

    def _create(**overrides: Any) -> Dict[str, Any]:
        counter["value"] += 1
        payload = {"unit_number": str(counter["value"]), "bedrooms": 2, "bathrooms": 1.5, "square_footage": 900}
        payload.update(overrides)
        result = unit_service.create_unit(db_session, payload)
        assert result.success, result.error
        return result.data

    return _create


def checklist(count: int) -> List[Dict[str, Any]]:
    return [
        {"task_id": f"task-{index}", "task_name": f"Task {index}", "category": "Cleaning", "order": index}
        for index in range(1, count + 1)
    ]


@pytest.fixture
def create_turn(db_session: Session, create_unit, manager: Actor) -> Callable[..., Dict[str, Any]]:
    def _create(unit: Dict[str, Any] = None, tasks: int = 4, **overrides: Any) -> Dict[str, Any]:
        unit = unit or create_unit()
        payload = {
            "unit_id": unit["id"],
            "assigned_technician_id": "tech-1",
            "assigned_technician_name": "Terry Tech",
            "checklist": checklist(tasks),
            "target_completion_date": clock.utcnow() + timedelta(days=5),
        }
        payload.update(overrides)
        result = turn_service.create_turn(db_session, payload, manager)
        assert result.success, result.error
        return result.data

    return _create
