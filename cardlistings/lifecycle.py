# cardlistings/lifecycle.py
"""Listing lifecycle: status transitions and expiration.

A listing is ``active`` until its owner archives it, it sells, or its
tier-dependent lifetime runs out. Archived listings are kept for a fixed
seven day window and can be restored during it; after that the sweep deletes
them. ``sold`` is terminal. Permanent deletion is allowed from any state.

The patch builders below are pure; ``LifecycleManager`` loads a listing,
validates the transition, writes one patch and invalidates the cache entry.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from .cache import TTLCache
from .errors import InvalidTransition, NotFound, PersistenceUnavailable
from .tiers import AccountTier, tier_duration
from .utils import as_utc, logger, utcnow

ARCHIVE_RETENTION = timedelta(days=7)


class ListingStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    SOLD = "sold"


class ExpirationReason(str, Enum):
    MANUAL = "manual"
    TIER_DURATION_EXCEEDED = "tier_duration_exceeded"


DELETED = "deleted"

ALLOWED_TRANSITIONS = {
    ListingStatus.ACTIVE.value: {ListingStatus.ARCHIVED.value, ListingStatus.SOLD.value},
    ListingStatus.ARCHIVED.value: {ListingStatus.ACTIVE.value},
    ListingStatus.SOLD.value: set(),
}

# Only the lifecycle code writes these.
LIFECYCLE_FIELDS = frozenset({
    "id", "user_id", "status", "created_at", "archived_at", "expires_at",
    "previous_status", "previous_expires_at", "original_created_at",
    "expiration_reason", "restored_at", "restored_reason", "sold_at",
    "buyer_id", "updated_at",
})


def _status(listing) -> Optional[str]:
    status = getattr(listing, "status", None)
    return status.value if isinstance(status, ListingStatus) else status


def check_transition(listing, target: str) -> None:
    if target == DELETED:
        return
    current = _status(listing)
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransition(getattr(listing, "id", None), current, target)


def creation_fields(tier, now: datetime) -> Dict:
    return {
        "status": ListingStatus.ACTIVE.value,
        "created_at": now,
        "expires_at": now + tier_duration(tier),
        "updated_at": now,
    }


def archive_patch(listing, now: datetime, reason: str = ExpirationReason.MANUAL.value) -> Dict:
    check_transition(listing, ListingStatus.ARCHIVED.value)
    return {
        "status": ListingStatus.ARCHIVED.value,
        "archived_at": now,
        "previous_status": _status(listing),
        "previous_expires_at": listing.expires_at,
        "original_created_at": listing.created_at,
        "expires_at": now + ARCHIVE_RETENTION,
        "expiration_reason": reason,
        "updated_at": now,
    }


def restore_patch(listing, tier, now: datetime) -> Dict:
    check_transition(listing, ListingStatus.ACTIVE.value)
    return {
        "status": ListingStatus.ACTIVE.value,
        "archived_at": None,
        "created_at": now,
        "expires_at": now + tier_duration(tier),
        "previous_status": None,
        "previous_expires_at": None,
        "original_created_at": None,
        "expiration_reason": None,
        "restored_at": now,
        "restored_reason": "manual_restoration",
        "updated_at": now,
    }


def sold_patch(listing, buyer_id: str, now: datetime) -> Dict:
    check_transition(listing, ListingStatus.SOLD.value)
    return {
        "status": ListingStatus.SOLD.value,
        "sold_at": now,
        "buyer_id": buyer_id,
        "updated_at": now,
    }


def is_expired(listing, now: datetime) -> bool:
    # sold listings are frozen
    if _status(listing) == ListingStatus.SOLD.value:
        return False
    expires_at = as_utc(getattr(listing, "expires_at", None))
    if expires_at is None:
        return False
    return as_utc(now) > expires_at


@dataclass
class SweepResult:
    archived: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    already_removed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    def as_dict(self):
        return {
            "archived": len(self.archived),
            "deleted": len(self.deleted),
            "already_removed": len(self.already_removed),
            "failed": len(self.failed),
            "archived_ids": self.archived[:10],
            "deleted_ids": self.deleted[:10],
        }


class LifecycleManager:
    """Applies lifecycle transitions through a listing store.

    ``store`` follows the ``crud.ListingStore`` contract, ``tiers`` provides
    ``current_tier(user_id)``. ``cache`` (optional) holds read-side listing
    entries keyed by id and is invalidated after each successful write.
    """

    def __init__(self, store, tiers, cache: Optional[TTLCache] = None, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.tiers = tiers
        self.cache = cache
        self._clock = clock

    def _forget(self, listing_id: str) -> None:
        if self.cache is not None:
            self.cache.invalidate(listing_id)

    def _load(self, listing_id: str):
        return self.store.get(listing_id)

    def _apply(self, listing_id: str, patch: Dict):
        listing = self.store.patch(listing_id, patch)
        self._forget(listing_id)
        return listing

    def _guarded(self, build: Callable[[], Dict]) -> Dict:
        try:
            return build()
        except InvalidTransition as e:
            logger.warning("Rejected transition: %s", e.message)
            raise

    def create(self, user_id: str, **payload):
        reserved = LIFECYCLE_FIELDS.intersection(payload)
        if reserved:
            raise ValueError(f"lifecycle fields cannot be set on create: {sorted(reserved)}")
        now = self._clock()
        tier = self.tiers.current_tier(user_id)
        fields = dict(payload, user_id=user_id, **creation_fields(tier, now))
        listing = self.store.create(fields)
        logger.info("Created listing %s for %s (%s tier, expires %s)",
                    listing.id, user_id, tier.value, fields["expires_at"].isoformat())
        return listing

    def archive(self, listing_id: str, reason: str = ExpirationReason.MANUAL.value):
        listing = self._load(listing_id)
        patch = self._guarded(lambda: archive_patch(listing, self._clock(), reason))
        listing = self._apply(listing_id, patch)
        logger.info("Archived listing %s (%s), purge after %s",
                    listing_id, reason, patch["expires_at"].isoformat())
        return listing

    def restore(self, listing_id: str):
        listing = self._load(listing_id)
        self._guarded(lambda: check_transition(listing, ListingStatus.ACTIVE.value))
        tier = self.tiers.current_tier(listing.user_id)
        patch = restore_patch(listing, tier, self._clock())
        listing = self._apply(listing_id, patch)
        logger.info("Restored listing %s (%s tier), expires %s",
                    listing_id, tier.value, patch["expires_at"].isoformat())
        return listing

    def mark_sold(self, listing_id: str, buyer_id: str):
        listing = self._load(listing_id)
        patch = self._guarded(lambda: sold_patch(listing, buyer_id, self._clock()))
        listing = self._apply(listing_id, patch)
        logger.info("Listing %s sold to %s", listing_id, buyer_id)
        return listing

    def permanently_delete(self, listing_id: str) -> None:
        self.store.remove(listing_id)
        self._forget(listing_id)
        logger.info("Permanently deleted listing %s", listing_id)

    def sweep_expired(self, listings: Optional[Iterable] = None, now: Optional[datetime] = None) -> SweepResult:
        """Enforce expiry over a snapshot (or everything active/archived).

        Expired archived listings are deleted; expired active listings are
        archived with reason ``tier_duration_exceeded`` so the owner can still
        restore them. A row that vanished since the snapshot was taken counts
        as already removed.
        """
        now = now or self._clock()
        if listings is None:
            listings = self.store.query(statuses=[ListingStatus.ACTIVE.value, ListingStatus.ARCHIVED.value])
        result = SweepResult()
        for listing in list(listings):
            listing_id = self.store.identify(listing)
            try:
                row = self.store.freeze(listing)
                if not is_expired(row, now):
                    continue
                status = _status(row)
                if status == ListingStatus.ARCHIVED.value:
                    self.permanently_delete(listing_id)
                    result.deleted.append(listing_id)
                elif status == ListingStatus.ACTIVE.value:
                    patch = archive_patch(row, now, ExpirationReason.TIER_DURATION_EXCEEDED.value)
                    self._apply(listing_id, patch)
                    result.archived.append(listing_id)
            except NotFound:
                result.already_removed.append(listing_id)
            except PersistenceUnavailable as e:
                logger.warning("Sweep could not process listing %s: %s", listing_id, e.message)
                result.failed.append(listing_id)
        logger.info("Sweep at %s: archived=%d deleted=%d already_removed=%d failed=%d",
                    now.isoformat(), len(result.archived), len(result.deleted),
                    len(result.already_removed), len(result.failed))
        return result

    def restore_incorrectly_archived(self, user_id: str) -> List[str]:
        """Re-activate listings auto-archived under a tier the owner no longer has.

        Only premium owners qualify; a listing comes back if its original
        creation time plus the premium lifetime is still ahead.
        """
        tier = self.tiers.current_tier(user_id)
        if tier is not AccountTier.PREMIUM:
            logger.info("User %s is not premium, no restoration needed", user_id)
            return []
        now = self._clock()
        restored = []
        candidates = self.store.query(statuses=[ListingStatus.ARCHIVED.value], user_id=user_id)
        for listing in candidates:
            try:
                row = self.store.freeze(listing)
            except NotFound:
                continue
            if row.expiration_reason != ExpirationReason.TIER_DURATION_EXCEEDED.value:
                continue
            created_at = as_utc(row.original_created_at or row.created_at)
            should_expire_at = created_at + tier_duration(AccountTier.PREMIUM)
            if now >= should_expire_at:
                continue
            self._apply(row.id, {
                "status": ListingStatus.ACTIVE.value,
                "archived_at": None,
                "expires_at": should_expire_at,
                "previous_status": None,
                "previous_expires_at": None,
                "original_created_at": None,
                "expiration_reason": None,
                "restored_at": now,
                "restored_reason": "premium_user_correction",
                "updated_at": now,
            })
            restored.append(row.id)
        logger.info("Restored %d incorrectly archived listings for %s", len(restored), user_id)
        return restored
