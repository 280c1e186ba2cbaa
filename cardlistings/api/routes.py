# cardlistings/api/routes.py
import os
import secrets
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from sqlalchemy.orm import Session
from typing import List
from .. import schemas, services
from ..cache import get_or_load
from ..db import get_db
from ..lifecycle import LifecycleManager, ListingStatus
from ..visibility import VIEWS, ActiveView

router = APIRouter()


def get_manager(request: Request, db: Session = Depends(get_db)) -> LifecycleManager:
    state = request.app.state
    return services.build_manager(
        db, listing_cache=state.listing_cache, tier_cache=state.tier_cache, clock=state.clock
    )


def current_user(x_user_id: str | None = Header(None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id")
    return x_user_id


def require_cron_secret(
    authorization: str | None = Header(None),
    x_cron_secret: str | None = Header(None),
):
    expected = os.getenv("CRON_SECRET")
    provided = x_cron_secret
    if not provided and authorization and authorization.startswith("Bearer "):
        provided = authorization[len("Bearer "):]
    if not expected or not provided or not secrets.compare_digest(provided, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


def _owned(manager: LifecycleManager, listing_id: str, user_id: str):
    listing = manager.store.get(listing_id)
    if listing.user_id != user_id:
        raise HTTPException(status_code=403, detail="Not the owner of this listing")
    return listing


@router.get("/health")
def health():
    return {"status": "ok"}

@router.post("/listings", response_model=schemas.ListingOut, status_code=201)
def create_listing(
    payload: schemas.ListingCreate,
    user_id: str = Depends(current_user),
    manager: LifecycleManager = Depends(get_manager),
):
    return manager.create(user_id, **payload.model_dump(exclude_unset=True))

@router.get("/listings", response_model=List[schemas.ListingOut])
def listings(
    request: Request,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    min_price: float | None = Query(None),
    max_price: float | None = Query(None),
    game: str | None = Query(None),
    condition: str | None = Query(None),
    location: str | None = Query(None),
    manager: LifecycleManager = Depends(get_manager),
):
    filters = {
        "min_price": min_price,
        "max_price": max_price,
        "game": game,
        "condition": condition,
        "location": location
    }
    rows = manager.store.query(statuses=[ListingStatus.ACTIVE.value], filters=filters)
    visible = list(ActiveView(rows, request.app.state.clock()))
    return visible[skip:skip + limit]


@router.get("/listings/{listing_id}", response_model=schemas.ListingOut)
def get_listing(listing_id: str, manager: LifecycleManager = Depends(get_manager)):
    return get_or_load(
        manager.cache, listing_id,
        lambda: schemas.ListingOut.model_validate(manager.store.get(listing_id)),
    )


@router.get("/users/{user_id}/listings", response_model=List[schemas.ListingOut])
def user_listings(
    user_id: str,
    request: Request,
    view: ListingStatus = Query(ListingStatus.ACTIVE),
    manager: LifecycleManager = Depends(get_manager),
):
    order_by = "archived_at" if view is ListingStatus.ARCHIVED else "created_at"
    rows = manager.store.query(statuses=[view.value], user_id=user_id, order_by=order_by)
    return list(VIEWS[view.value](rows, request.app.state.clock()))


@router.post("/listings/{listing_id}/archive", response_model=schemas.ListingOut)
def archive_listing(
    listing_id: str,
    user_id: str = Depends(current_user),
    manager: LifecycleManager = Depends(get_manager),
):
    _owned(manager, listing_id, user_id)
    return manager.archive(listing_id)


@router.post("/listings/{listing_id}/restore", response_model=schemas.ListingOut)
def restore_listing(
    listing_id: str,
    user_id: str = Depends(current_user),
    manager: LifecycleManager = Depends(get_manager),
):
    _owned(manager, listing_id, user_id)
    return manager.restore(listing_id)


@router.post("/listings/{listing_id}/sold", response_model=schemas.ListingOut,
             dependencies=[Depends(require_cron_secret)])
def mark_listing_sold(
    listing_id: str,
    payload: schemas.MarkSold,
    manager: LifecycleManager = Depends(get_manager),
):
    listing = manager.store.get(listing_id)
    if listing.user_id == payload.buyer_id:
        raise HTTPException(status_code=400, detail="Seller cannot buy their own listing")
    return manager.mark_sold(listing_id, payload.buyer_id)


@router.delete("/listings/{listing_id}")
def delete_listing(
    listing_id: str,
    user_id: str = Depends(current_user),
    manager: LifecycleManager = Depends(get_manager),
):
    _owned(manager, listing_id, user_id)
    manager.permanently_delete(listing_id)
    return {"status": "deleted"}


@router.post("/users/{user_id}/listings/bulk", response_model=schemas.BulkOut)
def bulk_listings(
    user_id: str,
    payload: schemas.BulkAction,
    acting_user: str = Depends(current_user),
    manager: LifecycleManager = Depends(get_manager),
):
    if acting_user != user_id:
        raise HTTPException(status_code=403, detail="Can only change your own listings")
    return services.bulk_transition(manager, user_id, payload.action, payload.listing_ids)


@router.put("/accounts/{user_id}", response_model=schemas.AccountOut,
            dependencies=[Depends(require_cron_secret)])
def put_account(
    user_id: str,
    payload: schemas.AccountUpdate,
    request: Request,
    db: Session = Depends(get_db),
):
    account, effective = services.update_account(
        db, user_id, payload.model_dump(), tier_cache=request.app.state.tier_cache,
        now=request.app.state.clock(),
    )
    return schemas.AccountOut(
        id=account.id,
        account_tier=account.account_tier,
        subscription_status=account.subscription_status,
        subscription_id=account.subscription_id,
        subscription_end_date=account.subscription_end_date,
        subscription_renewal_date=account.subscription_renewal_date,
        subscription_manually_updated=bool(account.subscription_manually_updated),
        subscription_current_plan=account.subscription_current_plan,
        effective_tier=effective,
    )


@router.post("/accounts/{user_id}/restore-archived", response_model=schemas.RestoredOut)
def restore_archived(
    user_id: str,
    acting_user: str = Depends(current_user),
    manager: LifecycleManager = Depends(get_manager),
):
    if acting_user != user_id:
        raise HTTPException(status_code=403, detail="Can only restore your own listings")
    return {"restored": manager.restore_incorrectly_archived(user_id)}


@router.post("/cron/sweep", response_model=schemas.SweepOut, dependencies=[Depends(require_cron_secret)])
def trigger_sweep(manager: LifecycleManager = Depends(get_manager)):
    return manager.sweep_expired().as_dict()
