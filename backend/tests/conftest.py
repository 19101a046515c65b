"""Pytest configuration and fixtures."""
import os

# アプリ設定の読み込み前にテスト用の値を入れる
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_AUDIENCE"] = "authenticated"
os.environ["SCHEDULER_TOKEN"] = "test-scheduler-token"
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["DEBUG"] = "false"

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from printgest.core.config import settings
from printgest.core.database import Base, get_db
from printgest.core.errors import UpstreamError
from printgest.main import app
from printgest.models import Profile, UserRole, UserSubscription
from printgest.schemas.auth import CallerIdentity
from printgest.services import stripe_service

ADMIN_ID = "00000000-0000-0000-0000-00000000a001"
USER_ID = "00000000-0000-0000-0000-00000000b001"


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@pytest.fixture(scope="function")
def db_session() -> Session:
    """テストごとに新しいインメモリSQLite"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
        session.rollback()
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def client(db_session):
    """get_db をテスト用セッションに差し替えたTestClient"""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def make_token(user_id: str, email: str = None, expires_in: timedelta = timedelta(hours=1), secret: str = None) -> str:
    payload = {
        "sub": user_id,
        "aud": settings.JWT_AUDIENCE,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, secret or settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_header(user_id: str) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


def add_profile(db: Session, user_id: str, email: str = None, **fields) -> Profile:
    profile = Profile(id=user_id, email=email or f"{user_id[-4:]}@example.com", **fields)
    db.add(profile)
    db.commit()
    return profile


def add_subscription(db: Session, user_id: str, **fields) -> UserSubscription:
    values = {"tier": "free", "status": "active", "is_read_only": False}
    values.update(fields)
    sub = UserSubscription(user_id=user_id, **values)
    db.add(sub)
    db.commit()
    return sub


@pytest.fixture
def admin(db_session) -> CallerIdentity:
    add_profile(db_session, ADMIN_ID, email="admin@example.com", full_name="Admin")
    db_session.add(UserRole(user_id=ADMIN_ID, role="admin"))
    db_session.commit()
    return CallerIdentity(user_id=ADMIN_ID, email="admin@example.com", is_admin=True)


@pytest.fixture
def user(db_session) -> CallerIdentity:
    add_profile(db_session, USER_ID, email="maria@example.com", full_name="Maria")
    return CallerIdentity(user_id=USER_ID, email="maria@example.com", is_admin=False)


class FakeStripe:
    """stripe_service の差し替え。呼び出しを記録する"""

    def __init__(self):
        self.period_end = None
        self.fail = False
        self.cancelled = []
        self.charges = []
        self.refunds = []

    def _check(self):
        if self.fail:
            raise UpstreamError("Stripe unavailable")

    def get_current_period_end(self, subscription_id):
        self._check()
        return self.period_end

    def cancel_subscription(self, subscription_id, at_period_end=True):
        self._check()
        self.cancelled.append((subscription_id, at_period_end))

    def cancel_subscription_immediately(self, subscription_id):
        self.cancel_subscription(subscription_id, at_period_end=False)

    def list_recent_charges(self, customer_id, limit=10):
        self._check()
        return self.charges

    def create_refund(self, charge_id, amount, metadata=None):
        self._check()
        self.refunds.append((charge_id, amount))
        return f"re_{len(self.refunds)}"


@pytest.fixture
def fake_stripe(monkeypatch) -> FakeStripe:
    fake = FakeStripe()
    monkeypatch.setattr(stripe_service, "is_configured", lambda: True)
    for name in (
        "get_current_period_end",
        "cancel_subscription",
        "cancel_subscription_immediately",
        "list_recent_charges",
        "create_refund",
    ):
        monkeypatch.setattr(stripe_service, name, getattr(fake, name))
    return fake
