# cardlistings/services.py
from sqlalchemy.orm import Session
from typing import Callable, Dict, Iterable, Optional
from . import crud, schemas
from .cache import TTLCache
from .db import SessionLocal
from .errors import InvalidTransition, NotFound, PersistenceUnavailable
from .lifecycle import LifecycleManager, ListingStatus
from .pending import PendingOperations
from .tiers import TierSource, determine_account_tier
from .utils import logger, retry, utcnow

# what a bulk action is expected to do to each listing; None removes it
BULK_PREDICTIONS = {
    "archive": {"status": ListingStatus.ARCHIVED.value},
    "restore": {"status": ListingStatus.ACTIVE.value, "archived_at": None},
    "delete": None,
}


def build_manager(
    db: Session,
    listing_cache: Optional[TTLCache] = None,
    tier_cache: Optional[TTLCache] = None,
    clock: Callable = utcnow,
) -> LifecycleManager:
    tiers = TierSource(lambda user_id: crud.get_account(db, user_id), cache=tier_cache, clock=clock)
    return LifecycleManager(crud.ListingStore(db), tiers, cache=listing_cache, clock=clock)


def update_account(db: Session, user_id: str, data: Dict, tier_cache: Optional[TTLCache] = None, now=None):
    data = dict(data)
    if data.get("account_tier") is not None:
        data["account_tier"] = getattr(data["account_tier"], "value", data["account_tier"])
    account = crud.upsert_account(db, user_id, data)
    if tier_cache is not None:
        tier_cache.invalidate(user_id)
    effective = determine_account_tier(account, now or utcnow())
    logger.info("Account %s updated: tier=%s effective=%s", user_id, account.account_tier, effective.value)
    return account, effective


@retry(PersistenceUnavailable, tries=3, delay=5, backoff=2)
def run_sweep(session_factory=SessionLocal, now=None, **manager_kwargs) -> Dict:
    db = session_factory()
    try:
        manager = build_manager(db, **manager_kwargs)
        return manager.sweep_expired(now=now).as_dict()
    finally:
        db.close()


def _listing_dict(listing) -> Dict:
    return schemas.ListingOut.model_validate(listing).model_dump()


def bulk_transition(manager: LifecycleManager, user_id: str, action: str, listing_ids: Iterable[str]) -> Dict:
    """Archive, restore or delete several of one owner's listings.

    Each write goes through ``PendingOperations`` over the owner's listings:
    a failed write leaves that entry as it was, so the returned ``listings``
    match what the store holds even when only some writes went through.
    """
    if action not in BULK_PREDICTIONS:
        raise ValueError(f"unknown bulk action {action!r}")
    writers = {
        "archive": manager.archive,
        "restore": manager.restore,
        "delete": manager.permanently_delete,
    }

    def write(listing_id):
        listing = writers[action](listing_id)
        return None if listing is None else _listing_dict(listing)

    rows = manager.store.query(user_id=user_id)
    pending = PendingOperations({row.id: _listing_dict(row) for row in rows})
    outcome = {"applied": [], "already_removed": [], "rejected": [], "failed": []}
    for listing_id in dict.fromkeys(listing_ids):
        if pending.get(listing_id) is None:
            # gone already, or owned by someone else
            try:
                manager.store.get(listing_id)
            except NotFound:
                outcome["already_removed"].append(listing_id)
            else:
                outcome["rejected"].append(listing_id)
            continue
        try:
            pending.apply(listing_id, BULK_PREDICTIONS[action], lambda: write(listing_id))
        except NotFound:
            pending.discard(listing_id)
            outcome["already_removed"].append(listing_id)
        except InvalidTransition:
            outcome["rejected"].append(listing_id)
        except PersistenceUnavailable as e:
            logger.warning("Bulk %s of listing %s failed: %s", action, listing_id, e.message)
            outcome["failed"].append(listing_id)
        else:
            outcome["applied"].append(listing_id)
    logger.info("Bulk %s for %s: applied=%d already_removed=%d rejected=%d failed=%d", action, user_id,
                len(outcome["applied"]), len(outcome["already_removed"]),
                len(outcome["rejected"]), len(outcome["failed"]))
    return dict(outcome, action=action, listings=list(pending.snapshot().values()))
