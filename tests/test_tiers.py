# tests/test_tiers.py
from datetime import timedelta
from types import SimpleNamespace

import pytest

from cardlistings.cache import TTLCache
from cardlistings.tiers import (
    AccountTier,
    TierSource,
    determine_account_tier,
    tier_duration,
    tier_duration_hours,
)
from conftest import T0


@pytest.mark.parametrize("tier,hours", [
    ("free", 48),
    ("premium", 720),
    (AccountTier.PREMIUM, 720),
    ("PREMIUM", 720),
    ("gold", 48),
    ("", 48),
    (None, 48),
])
def test_tier_duration(tier, hours):
    assert tier_duration_hours(tier) == hours
    assert tier_duration(tier) == timedelta(hours=hours)


def account(**kwargs):
    fields = dict(
        account_tier="premium",
        subscription_status=None,
        subscription_id=None,
        subscription_end_date=None,
        subscription_renewal_date=None,
        subscription_manually_updated=False,
        subscription_current_plan=None,
    )
    fields.update(kwargs)
    return SimpleNamespace(**fields)


@pytest.mark.parametrize("kwargs,expected", [
    ({"subscription_status": "active"}, "premium"),
    ({"subscription_status": "trialing"}, "premium"),
    ({"subscription_status": "past_due"}, "free"),
    ({"subscription_id": "admin_grant_1", "subscription_status": "admin"}, "premium"),
    ({"subscription_id": "admin_grant_1", "subscription_status": "none"}, "free"),
    ({"subscription_status": "canceled", "subscription_end_date": T0 + timedelta(days=3)}, "premium"),
    ({"subscription_status": "canceled", "subscription_end_date": T0 - timedelta(days=3)}, "free"),
    ({"subscription_status": "canceled", "subscription_renewal_date": T0 + timedelta(days=1)}, "premium"),
    ({"subscription_status": "past_due", "subscription_manually_updated": True,
      "subscription_current_plan": "premium"}, "premium"),
    ({"subscription_status": "past_due", "subscription_manually_updated": True,
      "subscription_current_plan": "free"}, "free"),
    ({"subscription_status": "past_due", "subscription_current_plan": "premium"}, "free"),
    ({"account_tier": "free", "subscription_status": "active"}, "free"),
])
def test_determine_account_tier(kwargs, expected):
    assert determine_account_tier(account(**kwargs), T0) == AccountTier(expected)


def test_missing_account_is_free():
    assert determine_account_tier(None, T0) is AccountTier.FREE


def test_tier_source_caches_until_invalidated():
    calls = []
    records = {"u1": account(subscription_status="active")}

    def load(user_id):
        calls.append(user_id)
        return records.get(user_id)

    tiers = TierSource(load, cache=TTLCache(300), clock=lambda: T0)
    assert tiers.current_tier("u1") is AccountTier.PREMIUM
    records["u1"] = account(account_tier="free")
    assert tiers.current_tier("u1") is AccountTier.PREMIUM
    assert calls == ["u1"]

    tiers.invalidate("u1")
    assert tiers.current_tier("u1") is AccountTier.FREE
    assert calls == ["u1", "u1"]


def test_tier_source_falls_back_on_lookup_failure():
    now = [0.0]
    cache = TTLCache(10, clock=lambda: now[0])
    state = {"fail": False}

    def load(user_id):
        if state["fail"]:
            raise ConnectionError("store down")
        return account(subscription_status="active")

    tiers = TierSource(load, cache=cache, clock=lambda: T0)
    assert tiers.current_tier("u1") is AccountTier.PREMIUM
    now[0] = 60.0
    state["fail"] = True
    # stale cached value wins over the free default
    assert tiers.current_tier("u1") is AccountTier.PREMIUM
    # unknown user with a failing store fails closed
    assert tiers.current_tier("u2") is AccountTier.FREE
