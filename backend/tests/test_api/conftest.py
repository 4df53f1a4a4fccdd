"""
Shared pytest fixtures for API tests.

Each test module gets its own file-backed SQLite database (requests run in
worker threads); rows are wiped after every test.
"""
import os
import tempfile

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from main import app
from app.core.database import Base, get_db
from tests.conftest import make_api_key, make_organization


def _create_test_database():
    """
    Create a temp-file database engine and session factory.

    Returns:
        Tuple of (engine, SessionLocal, cleanup_func)
    """
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    engine = create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return engine, SessionLocal, lambda: os.path.exists(path) and os.remove(path)


@pytest.fixture(scope="module")
def test_db():
    """Tables are created at module start and dropped at module end."""
    engine, SessionLocal, cleanup = _create_test_database()
    Base.metadata.create_all(bind=engine)

    yield {"engine": engine, "SessionLocal": SessionLocal}

    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    cleanup()


@pytest.fixture(scope="function")
def db_session(test_db):
    """A session on the module database for arranging and checking rows."""
    session = test_db["SessionLocal"]()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def api_client(test_db):
    """
    TestClient with get_db pointed at the module database.

    The lifespan is not entered, so no default organization is created and
    the feed sync never starts.
    """
    SessionLocal = test_db["SessionLocal"]

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)

    yield client

    app.dependency_overrides.pop(get_db, None)

    db = SessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()
    finally:
        db.close()


@pytest.fixture
def organization(db_session):
    return make_organization(db_session=db_session, name="Acme")


@pytest.fixture
def api_key(db_session, organization):
    return make_api_key(db_session=db_session, organization_id=organization.id)


@pytest.fixture
def auth_headers(api_key):
    return {"X-API-Key": api_key.key_value}
