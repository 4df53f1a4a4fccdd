"""Pytest fixtures and configuration for test suite

This module provides:
1. Environment for tests (no Redis, no feed sync, no rate limiting, temp database)
2. Database session fixtures for test isolation
3. Factory functions for creating test objects with sensible defaults

Factory Functions:
    - make_organization(**overrides) -> Organization
    - make_api_key(**overrides) -> APIKey
    - make_camera(**overrides) -> Camera
    - make_person_log(**overrides) -> PersonLog
    - make_event(**overrides) -> RawEvent

Each model factory accepts an optional db_session parameter to persist objects.
"""
import os
import tempfile

# Must be set before app.core.config is imported anywhere
_TEST_DIR = tempfile.mkdtemp(prefix="sentinel-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_TEST_DIR, 'app.db')}")
os.environ["REDIS_ENABLED"] = "false"
os.environ["SYNC_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["STORAGE_PATH"] = os.path.join(_TEST_DIR, "faces")
os.environ["API_KEY"] = "bootstrap-test-key"

import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.models.api_key import APIKey
from app.models.camera import Camera
from app.models.organization import Organization
from app.models.person_log import PersonLog
from app.services.event_source import RawEvent

# 2023-11-14 22:13:20 UTC
T0_UNIX = 1_700_000_000
T0 = datetime.fromtimestamp(T0_UNIX, tz=timezone.utc)


# =============================================================================
# Factory Functions for Test Objects
# =============================================================================

def make_organization(
    db_session=None,
    id: str = None,
    name: str = "Test Organization",
    description: str = None,
    **overrides
) -> Organization:
    """
    Factory function to create Organization instances for testing.

    Example:
        org = make_organization(db_session=session, name="Acme")
    """
    organization = Organization(
        id=id or str(uuid.uuid4()),
        name=name,
        description=description,
        **overrides
    )
    if db_session:
        db_session.add(organization)
        db_session.commit()
    return organization


def make_api_key(
    db_session=None,
    organization_id: str = None,
    key_value: str = None,
    expires_at: datetime = None,
    **overrides
) -> APIKey:
    api_key = APIKey(
        key_value=key_value or f"key-{uuid.uuid4().hex}",
        organization_id=organization_id,
        expires_at=expires_at,
        description="test key",
        **overrides
    )
    if db_session:
        db_session.add(api_key)
        db_session.commit()
    return api_key


def make_camera(
    db_session=None,
    id: str = None,
    organization_id: str = None,
    name: str = "Test Camera",
    location: str = "Entrance",
    status: str = "active",
    **overrides
) -> Camera:
    """
    Factory function to create Camera instances for testing.

    Example:
        camera = make_camera(db_session=session, organization_id=org.id)
    """
    camera = Camera(
        id=id or str(uuid.uuid4()),
        organization_id=organization_id,
        name=name,
        location=location,
        status=status,
        **overrides
    )
    if db_session:
        db_session.add(camera)
        db_session.commit()
    return camera


def make_person_log(
    db_session=None,
    organization_id: str = None,
    camera_id: str = "camera-001",
    person_hash: str = "hash-001",
    timestamp: datetime = None,
    is_new_person: bool = False,
    **overrides
) -> PersonLog:
    log = PersonLog(
        organization_id=organization_id,
        camera_id=camera_id,
        person_hash=person_hash,
        timestamp=timestamp or datetime.now(timezone.utc),
        is_new_person=is_new_person,
        **overrides
    )
    if db_session:
        db_session.add(log)
        db_session.commit()
    return log


def make_event(
    timestamp: float = T0_UNIX,
    person_hash: str = "hash-001",
    camera_id: str = "camera-001",
    id: str = None,
) -> RawEvent:
    """Factory for feed events (not persisted)."""
    return RawEvent(
        id=id or f"evt-{uuid.uuid4().hex[:12]}",
        timestamp=timestamp,
        person_hash=person_hash,
        camera_id=camera_id,
    )


# =============================================================================
# Database Session Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """
    In-memory SQLite engine shared by every session of one test.

    StaticPool keeps a single connection so sessions opened from worker
    threads see the same database.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """
    Create a session on the in-memory test database

    Yields:
        SQLAlchemy Session for test database
    """
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def temp_db_file():
    """
    Create a temporary SQLite database file for multi-connection tests

    Yields:
        Path to temporary database file
    """
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    try:
        yield path
    finally:
        if os.path.exists(path):
            os.remove(path)


# =============================================================================
# Pytest Fixtures Using Factory Functions
# =============================================================================

@pytest.fixture
def sample_organization(db_session):
    return make_organization(db_session=db_session)


@pytest.fixture
def sample_camera(db_session, sample_organization):
    return make_camera(db_session=db_session, organization_id=sample_organization.id)
