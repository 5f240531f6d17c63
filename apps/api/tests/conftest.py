"""Pytest configuration and fixtures for integration tests."""

import os
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from climarisk_api.db.base import Base
from climarisk_api.db.session import get_db
from climarisk_api.ledger.service import LedgerService
from climarisk_api.models import MonitoredEntity
from climarisk_api.policy.engine import RiskRuleEngine
from climarisk_api.routes.commands import get_entity_service
from climarisk_api.sensors.openweather import SensorReading
from climarisk_api.services.entities import EntityService
from climarisk_api.services.refresh import DecisionCycleService


# Use test database URL from environment or default to SQLite in-memory
TEST_DATABASE_URL = os.getenv(
    "TEST_DATABASE_URL",
    "sqlite:///:memory:"
)


@pytest.fixture(scope="function")
def db():
    """
    Create a test database session.

    For integration tests, point TEST_DATABASE_URL at a real PostgreSQL
    instance to exercise the advisory-lock append path.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        # SQLite in-memory for fast unit tests
        engine = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        # PostgreSQL for integration tests
        engine = create_engine(TEST_DATABASE_URL)

    Base.metadata.create_all(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def ledger(db: Session) -> LedgerService:
    """Ledger service with retries that do not sleep."""
    return LedgerService(db, backoff_seconds=0)


@pytest.fixture
def enqueue() -> MagicMock:
    """Stand-in for the Celery enqueue call."""
    return MagicMock(return_value="job-123")


@pytest.fixture
def entity_service(db: Session, enqueue: MagicMock) -> EntityService:
    """Entity service with a mocked task queue."""
    return EntityService(db, enqueue=enqueue)


@pytest.fixture
def test_entity(entity_service: EntityService) -> MonitoredEntity:
    """An active entity registered through the command path."""
    return entity_service.create_entity("Lisbon Port", 38.7, -9.14, correlation_id="corr-setup")


def _reading(temp_c=18.0, wind_ms=3.0, rain_1h_mm=0.0) -> SensorReading:
    """Sensor reading with an OpenWeather-shaped raw document."""
    raw = {
        "main": {"temp": temp_c},
        "wind": {"speed": wind_ms},
        "rain": {"1h": rain_1h_mm},
        "name": "Test Station",
    }
    return SensorReading(temp_c=temp_c, wind_ms=wind_ms, rain_1h_mm=rain_1h_mm, raw=raw)


@pytest.fixture
def make_reading():
    """Factory for sensor readings."""
    return _reading


@pytest.fixture
def sensor() -> MagicMock:
    """Sensor returning a calm reading unless a test reconfigures it."""
    mock_sensor = MagicMock()
    mock_sensor.read.return_value = _reading()
    return mock_sensor


@pytest.fixture
def cycle(db: Session, sensor: MagicMock) -> DecisionCycleService:
    """Decision cycle service wired to the mocked sensor."""
    return DecisionCycleService(db, sensor=sensor, rules=RiskRuleEngine())


@pytest.fixture
def client(db: Session, enqueue: MagicMock):
    """Test client bound to the test session and mocked queue."""
    from climarisk_api.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_entity_service] = lambda: EntityService(db, enqueue=enqueue)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
