"""Shared pytest fixtures for courtside tests."""
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Generator, List
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Make tests/factories.py importable from every test module
sys.path.insert(0, str(Path(__file__).parent))

from courtside.core.config import Settings
from courtside.core.leagues import LeagueConfig, build_league_registry
from courtside.core.scheduler import TaskScheduler
from courtside.models import Base
from courtside.repositories import EntityStore
from courtside.services.circuit_breaker import provider_breakers
from courtside.services.provider_client import ProviderClient

from factories import NOW


class RecordingScheduler(TaskScheduler):
    """TaskScheduler that records every enqueue instead of running it."""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []

    def schedule_at(self, run_at, task_ref, kwargs, job_id=None) -> None:
        self.calls.append({
            "run_at": run_at,
            "task_ref": task_ref,
            "kwargs": kwargs,
            "job_id": job_id,
        })


@pytest.fixture(scope="function")
def engine() -> Generator[Engine, None, None]:
    """Isolated in-memory database shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(db_session: Session) -> EntityStore:
    return EntityStore(db_session)


@pytest.fixture
def leagues() -> Dict[str, LeagueConfig]:
    return build_league_registry(Settings())


@pytest.fixture
def nba(leagues) -> LeagueConfig:
    return leagues["nba"]


@pytest.fixture
def wnba(leagues) -> LeagueConfig:
    return leagues["wnba"]


@pytest.fixture
def gleague(leagues) -> LeagueConfig:
    return leagues["gleague"]


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def provider() -> MagicMock:
    """ProviderClient double; every fetch method is an AsyncMock."""
    return MagicMock(spec=ProviderClient)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Every test starts with closed breakers."""
    for breaker in provider_breakers.values():
        breaker.close()
    yield
    for breaker in provider_breakers.values():
        breaker.close()
