# cardlistings/crud.py
"""Persistence for `Listing` and `Account` entities.

``ListingStore`` is the store contract the lifecycle manager writes through:
get / patch / remove / query plus create. Database failures surface as
``PersistenceUnavailable`` (after the session is rolled back) and missing
rows as ``NotFound``, including rows deleted by another session after they
were loaded into this one.
"""
from collections import namedtuple
from contextlib import contextmanager
from sqlalchemy import and_, inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import ObjectDeletedError
from .errors import NotFound, PersistenceUnavailable
from .models import Account, Listing
from .utils import logger
from sqlalchemy.orm import Session
from typing import Dict, Any, Iterable, List, Optional

ORDERABLE_FIELDS = ("created_at", "expires_at", "archived_at", "updated_at", "sold_at")

# Plain copy of the columns the sweeps read; safe to use after later commits.
ListingSnapshot = namedtuple(
    "ListingSnapshot",
    "id user_id status created_at expires_at expiration_reason original_created_at",
)


class ListingStore:
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, action: str, listing_id: Optional[str] = None):
        try:
            yield
        except ObjectDeletedError as e:
            self.db.rollback()
            logger.info("Listing %s was removed during %s", listing_id, action)
            raise NotFound(listing_id) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Listing store %s failed: %s", action, e)
            raise PersistenceUnavailable(f"{action} failed: {e.__class__.__name__}") from e

    def _find(self, listing_id: str) -> Listing:
        obj = self.db.get(Listing, listing_id)
        if obj is None:
            raise NotFound(listing_id)
        return obj

    def identify(self, listing) -> Optional[str]:
        """Id of a loaded row or plain record, read without touching the database."""
        state = inspect(listing, raiseerr=False)
        if state is not None and state.identity:
            return state.identity[0]
        return getattr(listing, "id", None)

    def freeze(self, listing) -> ListingSnapshot:
        """Copy the lifecycle columns of ``listing`` into a ``ListingSnapshot``."""
        with self._guard("freeze", self.identify(listing)):
            return ListingSnapshot(
                id=listing.id,
                user_id=getattr(listing, "user_id", None),
                status=listing.status,
                created_at=getattr(listing, "created_at", None),
                expires_at=listing.expires_at,
                expiration_reason=getattr(listing, "expiration_reason", None),
                original_created_at=getattr(listing, "original_created_at", None),
            )

    def get(self, listing_id: str) -> Listing:
        with self._guard("get", listing_id):
            return self._find(listing_id)

    def create(self, fields: Dict[str, Any]) -> Listing:
        with self._guard("create"):
            obj = Listing(**fields)
            self.db.add(obj)
            self.db.commit()
            self.db.refresh(obj)
            return obj

    def patch(self, listing_id: str, fields: Dict[str, Any]) -> Listing:
        with self._guard("patch", listing_id):
            obj = self._find(listing_id)
            for k, v in fields.items():
                setattr(obj, k, v)
            self.db.commit()
            self.db.refresh(obj)
            return obj

    def remove(self, listing_id: str) -> None:
        with self._guard("remove", listing_id):
            obj = self._find(listing_id)
            self.db.delete(obj)
            self.db.commit()

    def query(
        self,
        statuses: Optional[Iterable[str]] = None,
        user_id: Optional[str] = None,
        filters: Optional[Dict] = None,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> List[Listing]:
        if order_by not in ORDERABLE_FIELDS:
            raise ValueError(f"cannot order listings by {order_by!r}")
        with self._guard("query"):
            q = self.db.query(Listing)
            conds = []
            if statuses is not None:
                conds.append(Listing.status.in_(list(statuses)))
            if user_id is not None:
                conds.append(Listing.user_id == user_id)
            if filters:
                if filters.get("min_price") is not None:
                    conds.append(Listing.price >= filters["min_price"])
                if filters.get("max_price") is not None:
                    conds.append(Listing.price <= filters["max_price"])
                if filters.get("game"):
                    conds.append(Listing.game == filters["game"])
                if filters.get("condition"):
                    conds.append(Listing.condition == filters["condition"])
                if filters.get("location"):
                    conds.append(Listing.location.ilike(f"%{filters['location']}%"))
            if conds:
                q = q.filter(and_(*conds))
            column = getattr(Listing, order_by)
            q = q.order_by(column.desc() if descending else column.asc())
            return q.all()


def get_account(db: Session, user_id: str) -> Optional[Account]:
    return db.get(Account, user_id)

def upsert_account(db: Session, user_id: str, data: Dict[str, Any]) -> Account:
    obj = db.get(Account, user_id)
    if obj is None:
        obj = Account(id=user_id)
        db.add(obj)
    for k, v in data.items():
        setattr(obj, k, v)
    db.commit()
    db.refresh(obj)
    return obj
