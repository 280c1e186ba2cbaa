# cardlistings/errors.py
"""Lifecycle error taxonomy.

``InvalidTransition`` is a caller bug (an action offered from the wrong
state). ``PersistenceUnavailable`` is retryable. ``NotFound`` means the
listing is already gone and is reported as benign.
"""
from typing import Optional


class LifecycleError(Exception):
    """Base class for errors raised by the listing lifecycle."""

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(message)


class InvalidTransition(LifecycleError):
    def __init__(self, listing_id: str, current: Optional[str], target: str):
        self.listing_id = listing_id
        self.current = current
        self.target = target
        super().__init__(
            f"listing {listing_id}: cannot move from {current!r} to {target!r}",
            code="invalid_transition",
        )


class PersistenceUnavailable(LifecycleError):
    def __init__(self, message: str = "listing store unavailable"):
        super().__init__(message, code="persistence_unavailable")


class NotFound(LifecycleError):
    def __init__(self, listing_id: str):
        self.listing_id = listing_id
        super().__init__(f"listing {listing_id} not found", code="not_found")
