# tests/conftest.py
import os

# must be set before cardlistings.db is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("CRON_SECRET", "test-cron-secret")

from datetime import datetime, timedelta, timezone

import pytest

from cardlistings import crud, services
from cardlistings.cache import TTLCache
from cardlistings.db import Base, engine, SessionLocal
import cardlistings.models  # noqa: F401

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class Clock:
    """Settable clock; call it to read the current instant."""

    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def listing_cache():
    return TTLCache(60)


@pytest.fixture
def manager(db, clock, listing_cache):
    return services.build_manager(db, listing_cache=listing_cache, tier_cache=TTLCache(300), clock=clock)


@pytest.fixture
def premium_user(db):
    crud.upsert_account(db, "premium-seller", {"account_tier": "premium", "subscription_status": "active"})
    return "premium-seller"
