# cardlistings/pending.py
"""Optimistic updates over a local listing snapshot.

A client applies an archive/restore/delete patch immediately, then confirms
it once the write succeeds or rolls it back if the write fails. At most one
operation is pending per listing.
"""
import copy
from typing import Any, Callable, Dict, Mapping, Optional


class PendingOperations:
    def __init__(self, listings: Optional[Mapping[str, Dict]] = None):
        self._listings: Dict[str, Dict] = {k: dict(v) for k, v in (listings or {}).items()}
        # listing id -> state before the pending patch (None: listing was absent)
        self._before: Dict[str, Optional[Dict]] = {}

    def begin(self, listing_id: str, patch: Optional[Mapping]) -> Optional[Dict]:
        """Apply ``patch`` to the snapshot; ``None`` removes the listing."""
        if listing_id in self._before:
            raise ValueError(f"operation already pending for listing {listing_id}")
        current = self._listings.get(listing_id)
        self._before[listing_id] = copy.deepcopy(current)
        if patch is None:
            self._listings.pop(listing_id, None)
            return None
        updated = dict(current or {}, **patch)
        self._listings[listing_id] = updated
        return updated

    def confirm(self, listing_id: str) -> None:
        self._before.pop(listing_id)

    def rollback(self, listing_id: str) -> Optional[Dict]:
        previous = self._before.pop(listing_id)
        if previous is None:
            self._listings.pop(listing_id, None)
        else:
            self._listings[listing_id] = previous
        return previous

    def is_pending(self, listing_id: str) -> bool:
        return listing_id in self._before

    def get(self, listing_id: str) -> Optional[Dict]:
        return self._listings.get(listing_id)

    def snapshot(self) -> Dict[str, Dict]:
        return copy.deepcopy(self._listings)

    def discard(self, listing_id: str) -> None:
        """Drop a listing from the snapshot, e.g. once the store reports it gone."""
        self._before.pop(listing_id, None)
        self._listings.pop(listing_id, None)

    def apply(self, listing_id: str, patch: Optional[Mapping], write: Callable[[], Any]) -> Any:
        """Apply ``patch`` optimistically around ``write()``.

        On success the operation is confirmed, and a mapping returned by
        ``write`` replaces the predicted entry. If ``write`` raises, the
        snapshot is rolled back and the error propagates.
        """
        self.begin(listing_id, patch)
        try:
            result = write()
        except Exception:
            self.rollback(listing_id)
            raise
        self.confirm(listing_id)
        if patch is not None and isinstance(result, Mapping):
            self._listings[listing_id] = dict(result)
        return result
