"""Integration test fixtures with a real (SQLite file) database."""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from staff_pay_engine.api.app import create_app
from staff_pay_engine.api.dependencies import get_session_factory
from staff_pay_engine.database import get_engine
from staff_pay_engine.fixtures import DEFAULT_FIXTURE_FILE, load_fixture_file
from staff_pay_engine.models import Base

# Row ids of the bundled seed file (data/seed_minimal.json)
S1_PLAY_BY_PLAY_IDS = (1, 2)
S2_HIGHLIGHTS_ID = 3
PAID_ID = 4
IN_PROGRESS_ID = 5
ELIGIBLE_IDS = [1, 2, 3]


@pytest.fixture
def test_engine(tmp_path):
    """File-backed SQLite engine, so separate sessions see each other's commits."""
    engine = get_engine(f"sqlite:///{tmp_path / 'staff_pay_test.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> sessionmaker[Session]:
    return sessionmaker(test_engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
def seeded_db(session_factory) -> sessionmaker[Session]:
    """Database loaded with the bundled fixture file."""
    with session_factory() as session:
        load_fixture_file(session, DEFAULT_FIXTURE_FILE)
        session.commit()
    return session_factory


@pytest.fixture
def client(seeded_db) -> Generator[TestClient, None, None]:
    """API client bound to the seeded test database."""
    app = create_app()
    app.dependency_overrides[get_session_factory] = lambda: seeded_db
    yield TestClient(app)
    app.dependency_overrides.clear()
