"""Pytest configuration and shared fixtures.

This adds the `src/` directory to `sys.path` so tests can import the
`conquest` package without requiring an editable install in CI.
"""

import sys
from pathlib import Path

import pytest

SRC_PATH = Path(__file__).resolve().parents[1] / "src"
TESTS_PATH = Path(__file__).resolve().parent
for path in (SRC_PATH, TESTS_PATH):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from builders import FakeClock, SequentialIds  # noqa: E402
from conquest.database import create_session_factory  # noqa: E402
from conquest.models import Base  # noqa: E402


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ids() -> SequentialIds:
    return SequentialIds()


@pytest.fixture
def engine():
    """In-memory SQLite shared across threads."""

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)
