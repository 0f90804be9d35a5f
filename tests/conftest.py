"""
Shared fixtures: an in-memory SQLite database per test, plus small
factories for users, wallets and tournaments.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENTRY_FEE_SETTLEMENT"] = "wallet"
os.environ.pop("PAYMENT_CALLBACK_SECRET", None)

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from firefight.auth import actor_for
from firefight.database import Base, SessionLocal, engine, get_db, init_db, utcnow
from firefight.events import relay
from firefight.main import app
from firefight.models.user import User
from firefight.services import wallet_service, tournament_service


@pytest.fixture
def db():
    """Fresh schema for each test."""
    init_db(engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_relay():
    yield
    relay.clear()


@pytest.fixture
def events():
    """Every event published during the test, in order."""
    recorded = []
    relay.subscribe(lambda event_type, payload: recorded.append((event_type, payload)))
    return recorded


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(username=None, balance=None, is_admin=False):
        counter["n"] += 1
        username = username or f"player{counter['n']}"
        user = User(email=f"{username}@arena.gg", username=username, is_admin=is_admin)
        db.add(user)
        db.commit()
        db.refresh(user)
        if balance:
            wallet_service.credit(db, user.id, balance, "deposit", description="Seed balance")
        return user

    return _make


@pytest.fixture
def admin(make_user):
    return actor_for(make_user("admin", is_admin=True))


@pytest.fixture
def make_tournament(db, admin):
    def _make(**overrides):
        now = utcnow()
        data = dict(
            title="Friday Night Squads",
            game="Free Fire",
            entry_fee=100,
            prize_pool=1000,
            max_participants=10,
            start_time=now + timedelta(days=2),
            registration_deadline=now + timedelta(days=1),
        )
        data.update(overrides)
        return tournament_service.create(db, admin, **data)

    return _make


@pytest.fixture
def client(db):
    """TestClient sharing the test's session."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth(user_or_actor):
    user_id = getattr(user_or_actor, "user_id", None) or user_or_actor.id
    return {"X-User-Id": user_id}
