"""Test configuration and fixtures.

Application modules read TESTING at import time, so the flags are set before
anything from the project is imported. Coroutine-level tests drive the core
with asyncio.run(); socket and HTTP paths go through FastAPI's TestClient.
"""

import os

# Set env flags BEFORE importing application modules
os.environ.setdefault("DEBUG", "1")
os.environ.setdefault("TESTING", "1")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///./test_db.sqlite")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import Settings
from database import Base
from fakes import FakeStore
from hub import build_hub
from realtime import ConnectionRegistry
from services.dedup import DedupCache
from services.dispatcher import NotificationDispatcher
import models.user  # ensure model registration
import models.conversation
import models.message


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_760_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture()
def dedup(clock) -> DedupCache:
    return DedupCache(retention_seconds=300, clock=clock)


@pytest.fixture()
def dispatcher(registry, dedup, clock) -> NotificationDispatcher:
    return NotificationDispatcher(registry, dedup, clock=clock)


@pytest.fixture()
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(FORCE_LOGOUT_GRACE_SECONDS=0.05, JANITOR_INTERVAL_SECONDS=3600)


@pytest.fixture()
def hub(store, test_settings, clock):
    return build_hub(store, test_settings, clock=clock)


@pytest.fixture()
def session_factory():
    # StaticPool keeps one in-memory database across the threadpool's connections
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture()
def app_client(store, test_settings):
    from main import create_app
    app = create_app(store=store, app_settings=test_settings)
    with TestClient(app) as client:
        yield client
