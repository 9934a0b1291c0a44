"""Pytest configuration and shared fixtures.

This module provides fixtures and configuration used across all tests.
"""

import os
from pathlib import Path
from typing import Generator

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set required environment variables for tests BEFORE importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "test_auth_token")
os.environ.setdefault("PHONE_HASH_SALT", "test_salt_for_hashing_phones")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("VERIFY_TWILIO_SIGNATURE", "false")

from app.models import Base, get_db
from app.services import survey_loader as survey_loader_module
from app.services.survey_loader import SurveyLoader


TEST_SURVEY_YAML = """
title: Test Survey
questions:
  - body: How old are you?
    type: numeric
  - body: Do you like surveys?
    type: yesno
  - body: Tell us about your day.
    type: voice
"""


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine with SQLite in-memory database.

    Yields:
        Engine: SQLAlchemy engine for testing

    Note:
        StaticPool keeps one connection so the in-memory database is shared
        with the TestClient's worker threads.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,  # Set to True for SQL debugging
    )

    # Enable foreign key support for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session.

    Yields:
        Session: SQLAlchemy session for testing
    """
    TestSessionLocal = sessionmaker(
        bind=db_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )

    session = TestSessionLocal()

    yield session

    session.rollback()
    session.close()


@pytest.fixture
def surveys_dir(tmp_path) -> Path:
    """Directory holding the default survey definition used by the webhooks."""
    (tmp_path / "automated_survey.yaml").write_text(TEST_SURVEY_YAML)
    return tmp_path


@pytest.fixture
def survey_loader(surveys_dir, monkeypatch) -> SurveyLoader:
    """Install a SurveyLoader reading from ``surveys_dir`` as the global loader."""
    loader = SurveyLoader(str(surveys_dir))
    loader.clear_cache()
    monkeypatch.setattr(survey_loader_module, "_loader_instance", loader)
    return loader


@pytest.fixture
def client(db_session, survey_loader):
    """FastAPI TestClient whose requests share ``db_session``."""
    from fastapi.testclient import TestClient
    from app.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def sample_phone_hash() -> str:
    """Provide a sample phone hash for testing.

    Returns:
        str: 64-character hex string (SHA-256 hash)
    """
    return "a1b2c3d4e5f6" + "0" * 52  # 64 chars total


@pytest.fixture
def call_params() -> dict:
    """Parameters Twilio sends with every voice webhook."""
    return {
        "CallSid": "CA" + "1" * 32,
        "AccountSid": "AC" + "2" * 32,
        "From": "+15551234567",
        "To": "+15559876543",
    }


@pytest.fixture
def sms_params() -> dict:
    """Parameters Twilio sends with every messaging webhook."""
    return {
        "MessageSid": "SM" + "3" * 32,
        "AccountSid": "AC" + "2" * 32,
        "From": "+15557654321",
        "To": "+15559876543",
    }
