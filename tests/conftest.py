"""Shared fixtures: an in-memory store and a seeded scenario."""

from datetime import datetime

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from factline.models import store_models  # noqa: F401  (registers tables)
from tests.helpers import definition, occurrence, sample, write


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def session_factory(engine):
    return lambda: Session(engine)


@pytest.fixture
def attendance(session):
    """Metric 5 "Attendance" (people): 10 on 2024-01-15 at X, 20 on 2024-02-20 at Y."""
    write(
        session,
        definitions=[definition()],
        occurrences=[
            occurrence(1, "X", datetime(2024, 1, 15, 10, 0)),
            occurrence(2, "Y", datetime(2024, 2, 20, 10, 0)),
        ],
        samples=[sample(1, 5, 10), sample(2, 5, 20)],
    )
    return session
