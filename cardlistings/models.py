# cardlistings/models.py
"""SQLAlchemy ORM models for persisted entities.

``Listing`` carries the lifecycle fields (status, timestamps, archive
snapshot) next to an opaque descriptive payload. ``Account`` backs the tier
source.
"""
import uuid
from sqlalchemy import Boolean, Column, Text, Numeric, JSON, Index
from .db import Base, UTCDateTime
from .utils import utcnow


def new_listing_id() -> str:
    return uuid.uuid4().hex


class Listing(Base):
    __tablename__ = "listings"
    id = Column(Text, primary_key=True, default=new_listing_id)
    user_id = Column(Text, nullable=False, index=True)

    status = Column(Text, nullable=False, default="active", index=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    archived_at = Column(UTCDateTime)
    expires_at = Column(UTCDateTime, index=True)
    previous_status = Column(Text)
    previous_expires_at = Column(UTCDateTime)
    original_created_at = Column(UTCDateTime)
    expiration_reason = Column(Text)
    restored_at = Column(UTCDateTime)
    restored_reason = Column(Text)
    sold_at = Column(UTCDateTime)
    buyer_id = Column(Text)
    updated_at = Column(UTCDateTime, default=utcnow)

    # payload, never read by the lifecycle code
    title = Column(Text)
    price = Column(Numeric)
    condition = Column(Text)
    game = Column(Text)
    location = Column(Text)
    image_urls = Column(JSON)

    def __repr__(self):
        return f"<Listing {self.id} {self.status} expires={self.expires_at}>"


class Account(Base):
    __tablename__ = "accounts"
    id = Column(Text, primary_key=True)
    account_tier = Column(Text, nullable=False, default="free")
    subscription_status = Column(Text)
    subscription_id = Column(Text)
    subscription_end_date = Column(UTCDateTime)
    subscription_renewal_date = Column(UTCDateTime)
    subscription_manually_updated = Column(Boolean, default=False)
    subscription_current_plan = Column(Text)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)


Index("idx_listings_user_status", Listing.user_id, Listing.status)
