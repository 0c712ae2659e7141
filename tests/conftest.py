import os
import tempfile

import pytest

# Point the services at a throwaway SQLite file.
# Set these BEFORE importing any project modules
TEST_DB_DIR = tempfile.mkdtemp(prefix="goals-test-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(TEST_DB_DIR, 'goals_test.db')}"
os.environ.pop("DB_HOST", None)

from api.models import Base, SessionLocal, engine, init_db


@pytest.fixture(scope="session", autouse=True)
def setup_db():
    init_db(engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    database = SessionLocal()
    try:
        yield database
    finally:
        database.close()


@pytest.fixture
def db_factory():
    return SessionLocal
