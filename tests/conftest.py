"""
Shared fixtures.

Every test gets its own in-memory SQLite database, a controllable clock and a
delivery channel that records what it was asked to send.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.db.base import Base
from app.models import OTP, User  # noqa: F401  registers the tables
from app.services.auth import UserDirectory
from app.services.otp import OtpManager, OtpPolicy
from app.services.otp_store import OtpStore

T0 = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingDelivery:
    def __init__(self):
        self.sent = []
        self.succeed = True
        self.error = None

    async def send(self, identity, code, context):
        self.sent.append((identity, code, dict(context)))
        if self.error is not None:
            raise self.error
        return self.succeed

    @property
    def last_code(self) -> str:
        return self.sent[-1][1]


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep tests away from real SMTP and Supabase regardless of the local environment."""
    monkeypatch.setattr(settings, "SMTP_HOST", "")
    monkeypatch.setattr(settings, "EMAIL_FROM", "")
    monkeypatch.setattr(settings, "SUPABASE_URL", "")
    monkeypatch.setattr(settings, "SUPABASE_SERVICE_KEY", "")
    monkeypatch.setattr(settings, "OTP_DEBUG_LOG", False)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def store(session_factory):
    return OtpStore(session_factory)


@pytest.fixture
def users(session_factory):
    return UserDirectory(session_factory)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def delivery():
    return RecordingDelivery()


@pytest.fixture
def manager(store, users, delivery, clock):
    return OtpManager(store, users, delivery, policy=OtpPolicy(), clock=clock)


@pytest.fixture
def run():
    return asyncio.run


@pytest.fixture
def add_owner(session_factory):
    """Insert an owner account directly, bypassing the registration flow."""
    from app.core.security import get_password_hash

    def _add(email="owner@boardfinder.lk", password="secret123", nic="200012345678", supabase_id=None):
        with session_factory() as db:
            user = User(
                email=email,
                password_hash=get_password_hash(password),
                name="Nimal Perera",
                age=40,
                phone="0771234567",
                nic=nic,
                supabase_id=supabase_id,
            )
            db.add(user)
            db.commit()
            db.refresh(user)
            return user

    return _add
