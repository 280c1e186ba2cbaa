# cardlistings/tiers.py
"""Account tiers and the active-listing lifetime each tier grants."""
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from .cache import TTLCache, ttl_from_env
from .utils import as_utc, logger, utcnow


class AccountTier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"


LISTING_DURATION_HOURS = {
    AccountTier.FREE: 48,
    AccountTier.PREMIUM: 720,
}


def normalize_tier(tier) -> AccountTier:
    """Map any input to a known tier; unknown values fall back to ``free``."""
    if isinstance(tier, AccountTier):
        return tier
    try:
        return AccountTier(str(tier).strip().lower())
    except ValueError:
        return AccountTier.FREE


def tier_duration_hours(tier) -> int:
    return LISTING_DURATION_HOURS[normalize_tier(tier)]


def tier_duration(tier) -> timedelta:
    return timedelta(hours=tier_duration_hours(tier))


PREMIUM_SUBSCRIPTION_STATES = ("active", "trialing")


def determine_account_tier(account, now: Optional[datetime] = None) -> AccountTier:
    """Resolve the effective tier from an account record.

    An account flagged premium only counts as premium while its subscription
    backs it: active or trialing, granted by an admin (``admin_`` ids), or
    canceled but still inside the paid period. A manual plan change to
    premium (admin tooling sets ``subscription_manually_updated``) also counts.
    """
    if account is None:
        return AccountTier.FREE
    if normalize_tier(getattr(account, "account_tier", None)) is not AccountTier.PREMIUM:
        return AccountTier.FREE

    now = now or utcnow()
    status = (getattr(account, "subscription_status", None) or "").lower()
    subscription_id = getattr(account, "subscription_id", None) or ""

    if status in PREMIUM_SUBSCRIPTION_STATES:
        return AccountTier.PREMIUM
    if subscription_id.startswith("admin_") and status != "none":
        return AccountTier.PREMIUM
    if getattr(account, "subscription_manually_updated", False) and \
            normalize_tier(getattr(account, "subscription_current_plan", None)) is AccountTier.PREMIUM:
        return AccountTier.PREMIUM
    if status == "canceled":
        for field in ("subscription_end_date", "subscription_renewal_date"):
            paid_until = as_utc(getattr(account, field, None))
            if paid_until is not None and now < paid_until:
                return AccountTier.PREMIUM
    return AccountTier.FREE


class TierSource:
    """Read-through cache of each user's effective tier.

    ``load_account`` returns the account record for a user id (or ``None``).
    Lookup errors fall back to the last cached tier, then to ``free``.
    """

    def __init__(self, load_account: Callable, cache: Optional[TTLCache] = None, clock=utcnow):
        self._load_account = load_account
        if cache is None:
            cache = TTLCache(ttl_from_env("TIER_CACHE_TTL_SECONDS", 300))
        self.cache = cache
        self._clock = clock

    def current_tier(self, user_id: str) -> AccountTier:
        cached = self.cache.get(user_id)
        if cached is not None:
            return cached
        try:
            account = self._load_account(user_id)
        except Exception:
            logger.exception("Tier lookup failed for user %s", user_id)
            return self.cache.get_stale(user_id, AccountTier.FREE)
        tier = determine_account_tier(account, self._clock())
        self.cache.set(user_id, tier)
        return tier

    def invalidate(self, user_id: str) -> None:
        self.cache.invalidate(user_id)
