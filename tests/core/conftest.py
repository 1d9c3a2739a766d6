"""Shared fixtures for core test suites."""

from collections.abc import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.config.database import attach_sqlite_pragmas
from src.core.store import Store
from src.models.db.base import Base
from tests.core.fakes import FakeNotifier, FakeRouter, FakeSource


@pytest.fixture
def store() -> Iterator[Store]:
    """Store backed by a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    attach_sqlite_pragmas(engine)
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(
        bind=engine, future=True, autoflush=False, expire_on_commit=False
    )
    try:
        yield Store(session_factory)
    finally:
        engine.dispose()


@pytest.fixture
def source() -> FakeSource:
    """Fake Plex watchlist source for the primary account ``owner``."""
    return FakeSource()


@pytest.fixture
def router() -> FakeRouter:
    """Recording content router."""
    return FakeRouter()


@pytest.fixture
def notifier() -> FakeNotifier:
    """Recording notifier."""
    return FakeNotifier()
