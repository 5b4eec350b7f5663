"""
Pytest configuration and fixtures for the ICT Academy backend tests.

Every test gets its own in-memory SQLite database; the app's get_db and
SMS dependencies are overridden so nothing touches the dev database or a
real SMS provider.
"""
import re
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ictacademy.database import Base
from ictacademy.models import Profile, UserRole
from ictacademy.services.otp_store import SqlOtpStore
from ictacademy.services.sms_service import SmsDispatcher, SmsDeliveryError
from ictacademy.utils.security import get_password_hash


class RecordingSmsBackend:
    """SMS backend that keeps every dispatch in memory"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send(self, recipients, message):
        if self.fail:
            raise SmsDeliveryError("provider down")
        self.sent.append((list(recipients), message))
        return {"status": "success"}

    def last_code(self):
        """OTP code from the most recent message"""
        _, message = self.sent[-1]
        return re.search(r"(\d{6})", message).group(1)


class FakeClock:
    def __init__(self, now: datetime = None):
        self.now = now or datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds: int):
        self.now += timedelta(seconds=seconds)


@pytest.fixture(scope="function")
def engine():
    test_engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def db(engine):
    """Clean database session for each test"""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db):
    return SqlOtpStore(db)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sms_backend():
    return RecordingSmsBackend()


@pytest.fixture
def sms(sms_backend):
    return SmsDispatcher(sms_backend)


@pytest.fixture
def failing_sms():
    return SmsDispatcher(RecordingSmsBackend(fail=True))


@pytest.fixture
def make_profile(db):
    """Create a profile, optionally with a password and roles"""
    def _make(phone, password=None, roles=(), first_name="Test", last_name="Student"):
        profile = Profile(
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            password_hash=get_password_hash(password) if password else None
        )
        db.add(profile)
        db.flush()
        for role in roles:
            db.add(UserRole(user_id=profile.id, role=role))
        db.commit()
        db.refresh(profile)
        return profile
    return _make


@pytest.fixture(scope="function")
def client(db, sms):
    """FastAPI TestClient with the test database and recording SMS backend"""
    from fastapi.testclient import TestClient
    from ictacademy.database import get_db
    from ictacademy.main import app
    from ictacademy.services.sms_service import get_sms_dispatcher

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sms_dispatcher] = lambda: sms

    try:
        # No context manager: startup would create tables in the dev database
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
