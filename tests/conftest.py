"""
Global pytest configuration and fixtures for the HerHaven API tests.
"""

import os

# Must be set before the app package reads its configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("SECURITY_HEADERS_ENABLED", "true")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

from datetime import datetime
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from app import models_sos  # noqa: F401
from app.auth import create_access_token
from app.database import Base, SessionLocal, engine
from app.main import app
from app.models import Counselor, EmergencyContact, User
from app.services.twilio_service import SMSResult, get_sms_gateway


class FakeGateway:
    """In-memory SMS gateway; phones can be set to fail or to raise"""

    def __init__(self):
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[str, str] = {}
        self.exceptions: dict[str, Exception] = {}

    @property
    def sent_to(self) -> list[str]:
        return [
            phone
            for phone, _ in self.calls
            if phone not in self.failures and phone not in self.exceptions
        ]

    async def send_sms(self, to_phone: str, message_body: str) -> SMSResult:
        self.calls.append((to_phone, message_body))
        if to_phone in self.exceptions:
            raise self.exceptions[to_phone]
        if to_phone in self.failures:
            return SMSResult(success=False, error=self.failures[to_phone])
        return SMSResult(success=True, message_id=f"SM{len(self.calls):04d}", status="queued")


@pytest.fixture
def db():
    """Fresh schema and session per test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(db, gateway):
    app.dependency_overrides[get_sms_gateway] = lambda: gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_user(db, email: str = "jane@example.com", **overrides) -> User:
    fields = {
        "email": email,
        "username": email.split("@")[0],
        "first_name": "Jane",
        "last_name": "Doe",
        "phone_number": "+250788000001",
    }
    fields.update(overrides)
    user = User(**fields)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_contact(
    db,
    user: User,
    name: str,
    phone_number: Optional[str],
    priority: int = 0,
    consent_given: bool = True,
    is_active: bool = True,
    relationship_type: str = "friend",
) -> EmergencyContact:
    contact = EmergencyContact(
        user_id=user.id,
        name=name,
        email=f"{name.lower().replace(' ', '.')}@example.com",
        phone_number=phone_number,
        priority=priority,
        consent_given=consent_given,
        consent_given_at=datetime.utcnow() if consent_given else None,
        is_active=is_active,
        relationship_type=relationship_type,
    )
    db.add(contact)
    db.commit()
    db.refresh(contact)
    return contact


def make_counselor(db, availability=None, schedule=None, **overrides) -> Counselor:
    fields = {
        "first_name": "Grace",
        "last_name": "Uwase",
        "username": "grace",
        "email": "grace@example.com",
        "specialization": "Trauma counseling",
        "is_verified": True,
        "is_active": True,
        "is_available": True,
        "availability": availability or [],
        "schedule": schedule or [],
    }
    fields.update(overrides)
    counselor = Counselor(**fields)
    db.add(counselor)
    db.commit()
    db.refresh(counselor)
    return counselor


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def user(db):
    return make_user(db)


@pytest.fixture
def other_user(db):
    return make_user(db, email="other@example.com", first_name="Other")
