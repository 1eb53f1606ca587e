import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET", "test_jwt_secret_with_at_least_32_characters")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx
import pytest
from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from nexuspay.core.models import Base, User
from nexuspay.utils.retry import RetryPolicy
from nexuspay.webhooks.forwarder import WebhookForwarder

BACKEND_URL = "http://backend.test"
FIXED_NOW = datetime(2024, 5, 1, 12, 30, 45, tzinfo=timezone.utc)


class FakeSleep:
    """Records backoff delays instead of sleeping."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class SteppingClock:
    """Clock that advances by ``step`` on every reading."""

    def __init__(self, start: datetime = FIXED_NOW, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


def mock_client_factory(handler: Callable[[httpx.Request], Any]) -> Callable[[], httpx.AsyncClient]:
    """Client factory whose clients answer through ``handler`` instead of the network."""
    return lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))


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
def db_session(engine):
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def user(db_session) -> User:
    user = User(id="user-1", phone_number="+254700000001", email="wanjiru@example.com", tier="tier_1")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def vip_user(db_session) -> User:
    user = User(id="user-3", phone_number="+254700000003", email="otieno@example.com", tier="TIER_3")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def error_logs():
    """ERROR-level loguru records emitted during the test."""
    records: list[dict] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="ERROR")
    yield records
    logger.remove(handler_id)


@pytest.fixture
def make_forwarder(fake_sleep):
    """Build a forwarder whose backend is the given MockTransport handler."""

    def factory(handler, retry_policy: RetryPolicy | None = None) -> WebhookForwarder:
        return WebhookForwarder(
            client_factory=mock_client_factory(handler),
            retry_policy=retry_policy,
            request_id_factory=lambda: "abc123xyz",
            sleep=fake_sleep,
            clock=lambda: FIXED_NOW,
        )

    return factory
