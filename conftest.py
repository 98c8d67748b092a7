import os

# Print embedded metrics to stdout instead of probing for a CloudWatch agent
os.environ.setdefault("AWS_EMF_ENVIRONMENT", "Local")
os.environ.setdefault("LOG_FORMAT", "console")

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

# --- Alembic Imports ---
from alembic.config import Config
from alembic import command
# --- End Alembic Imports ---

# Import app and DB dependency function first
from main import app, get_db

# Import database components needed for setup
from database import Base, build_engine
import models

TEST_DATABASE_URL = "sqlite:///./job-board-test.db"

test_engine = build_engine(TEST_DATABASE_URL)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create the test database from models and stamp with Alembic head."""
    db_path = TEST_DATABASE_URL.split("///")[-1]
    if os.path.exists(db_path):
        os.unlink(db_path)

    Base.metadata.create_all(bind=test_engine)

    alembic_cfg = Config("alembic.ini")
    alembic_cfg.set_main_option("sqlalchemy.url", TEST_DATABASE_URL)
    command.stamp(alembic_cfg, "head")

    yield  # Tests run here

    test_engine.dispose()
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.unlink(db_path + suffix)


@pytest.fixture(scope="function")
def db_session(setup_test_database):
    """Yields a session on an emptied database."""
    session = TestSessionLocal()
    session.query(models.SavedJob).delete()
    session.query(models.JobListing).delete()
    session.commit()
    try:
        yield session
    finally:
        session.close()


def make_job(db, job_id: str, posted_hours_ago=None, **fields) -> models.JobListing:
    """Insert a listing directly; the application itself never creates rows."""
    posted_at = None if posted_hours_ago is None else NOW - timedelta(hours=posted_hours_ago)
    values = {
        "title": f"Engineer {job_id}",
        "company": "Acme Corp",
        "job_url": f"https://www.linkedin.com/jobs/view/{job_id}",
        "posted_at": posted_at,
    }
    values.update(fields)
    job = models.JobListing(id=job_id, **values)
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


@pytest.fixture
def job_factory(db_session):
    def _make(job_id: str, posted_hours_ago=None, **fields):
        return make_job(db_session, job_id, posted_hours_ago, **fields)

    return _make


# Override the get_db dependency for tests
@pytest.fixture(scope="function")
def override_get_db():
    """Point the app's get_db dependency at the test database."""

    def _override_get_db():
        db = TestSessionLocal()
        try:
            yield db
        finally:
            db.close()

    original = app.dependency_overrides.get(get_db)
    app.dependency_overrides[get_db] = _override_get_db

    yield

    if original:
        app.dependency_overrides[get_db] = original
    else:
        del app.dependency_overrides[get_db]


@pytest.fixture(scope="function")
def test_client(override_get_db, db_session):
    """Provides a test client configured with our test database session."""
    return TestClient(app)
