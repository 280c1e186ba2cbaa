# cardlistings/visibility.py
"""Read-time visibility over a listing snapshot.

The sweep may lag behind the clock, so views hide anything that is logically
gone without writing. A view can be iterated any number of times.
"""
from datetime import datetime
from typing import Iterable, Optional

from .lifecycle import ListingStatus, is_expired
from .utils import as_utc


def hidden_reason(listing, now: datetime, view: str = ListingStatus.ACTIVE.value) -> Optional[str]:
    """Why ``listing`` is left out of ``view``, or ``None`` if it is shown."""
    status = getattr(listing, "status", None)
    if status != view:
        return f"status is {status!r}"
    if view == ListingStatus.SOLD.value:
        return None
    expires_at = as_utc(getattr(listing, "expires_at", None))
    if expires_at is None:
        return "missing expiration"
    if is_expired(listing, now):
        return f"expired at {expires_at.isoformat()}"
    return None


class ListingView:
    status = None

    def __init__(self, listings: Iterable, now: datetime):
        # one-shot iterables are materialized so the view can be re-iterated
        self._listings = listings if isinstance(listings, (list, tuple)) else list(listings)
        self.now = now

    def __iter__(self):
        for listing in self._listings:
            if hidden_reason(listing, self.now, self.status) is None:
                yield listing

    def hidden(self):
        """(listing id, reason) for every listing this view leaves out."""
        for listing in self._listings:
            reason = hidden_reason(listing, self.now, self.status)
            if reason is not None:
                yield getattr(listing, "id", None), reason


class ActiveView(ListingView):
    status = ListingStatus.ACTIVE.value


class ArchivedView(ListingView):
    status = ListingStatus.ARCHIVED.value


class SoldView(ListingView):
    status = ListingStatus.SOLD.value


VIEWS = {
    ListingStatus.ACTIVE.value: ActiveView,
    ListingStatus.ARCHIVED.value: ArchivedView,
    ListingStatus.SOLD.value: SoldView,
}
