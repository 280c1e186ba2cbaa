# cardlistings/schemas.py
from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import datetime
from .lifecycle import ListingStatus
from .tiers import AccountTier

class ListingBase(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    price: Optional[float] = Field(None, ge=0)
    condition: Optional[str] = None
    game: Optional[str] = None
    location: Optional[str] = None
    image_urls: Optional[List[str]] = None

class ListingCreate(ListingBase):
    pass

class ListingOut(ListingBase):
    id: str
    user_id: str
    status: ListingStatus
    created_at: datetime
    expires_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    previous_status: Optional[str] = None
    previous_expires_at: Optional[datetime] = None
    original_created_at: Optional[datetime] = None
    expiration_reason: Optional[str] = None
    restored_at: Optional[datetime] = None
    sold_at: Optional[datetime] = None
    buyer_id: Optional[str] = None
    class Config:
        from_attributes = True

class MarkSold(BaseModel):
    buyer_id: str = Field(..., min_length=1)

class AccountUpdate(BaseModel):
    account_tier: AccountTier = AccountTier.FREE
    subscription_status: Optional[str] = None
    subscription_id: Optional[str] = None
    subscription_end_date: Optional[datetime] = None
    subscription_renewal_date: Optional[datetime] = None
    subscription_manually_updated: bool = False
    subscription_current_plan: Optional[str] = None

class AccountOut(AccountUpdate):
    id: str
    effective_tier: AccountTier

class SweepOut(BaseModel):
    archived: int
    deleted: int
    already_removed: int
    failed: int
    archived_ids: List[str]
    deleted_ids: List[str]

class RestoredOut(BaseModel):
    restored: List[str]

class BulkAction(BaseModel):
    action: Literal["archive", "restore", "delete"]
    listing_ids: List[str] = Field(..., min_length=1)

class BulkOut(BaseModel):
    action: str
    applied: List[str]
    already_removed: List[str]
    rejected: List[str]
    failed: List[str]
    listings: List[ListingOut]
