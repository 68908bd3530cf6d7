"""
Share related Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict

from app.schemas.options import ShareSettings


class ShareCreate(BaseModel):
    """Schema for creating a share. Business rules are checked by ShareService."""

    shareable_type: str = Field(default="logo_generation", description="Target entity type tag")
    shareable_id: int = Field(..., description="Target entity id (must be owned)")
    share_type: str = Field(..., description="public | password_protected")
    title: Optional[str] = Field(None, description="Up to 255 characters; HTML is stripped")
    description: Optional[str] = Field(None, description="Up to 1000 characters; HTML is stripped")
    password: Optional[str] = Field(None, description="Required for password_protected (6-255 chars)")
    expires_at: Optional[datetime] = Field(None, description="Future timestamp, at most one year out")
    settings: Optional[ShareSettings] = None


class ShareUpdate(BaseModel):
    """
    Partial update. Only fields present in the request body are applied.
    share_type, target and password cannot be changed here, and a
    deactivated share stays inactive.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    settings: Optional[ShareSettings] = None
    expires_at: Optional[datetime] = None


class SharePasswordRequest(BaseModel):
    password: str = Field(..., min_length=1, max_length=255)


class PeakDay(BaseModel):
    date: str
    views: int


class ReferrerStat(BaseModel):
    referrer: str
    views: int


class IpAccessCount(BaseModel):
    ip_address: str
    accesses: int


class SecuritySummary(BaseModel):
    unique_ips_24h: int
    total_accesses_24h: int
    top_ips: List[IpAccessCount] = []


class ShareAnalytics(BaseModel):
    """Aggregates over the access ledger."""

    total_views: int
    unique_visitors: int
    recent_views: int = Field(description="Views in the last 7 days")
    today_views: int
    peak_day: Optional[PeakDay] = None
    referrer_stats: List[ReferrerStat] = []
    security: Optional[SecuritySummary] = None


class ShareResponse(BaseModel):
    """Owner-facing share representation."""

    id: int
    uuid: str
    title: Optional[str] = None
    description: Optional[str] = None
    share_type: str
    share_url: str
    is_active: bool
    view_count: int
    expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    settings: Optional[ShareSettings] = None
    last_viewed_at: Optional[datetime] = None
    is_expired: bool
    is_accessible: bool
    analytics: Optional[ShareAnalytics] = None

    model_config = ConfigDict(from_attributes=True)


class ShareListResponse(BaseModel):
    items: List[ShareResponse]
    total: int
    page: int
    per_page: int
    last_page: int
    has_more_pages: bool


class SharedLogo(BaseModel):
    id: int
    style: str
    variation_number: int
    image_width: int
    image_height: int

    model_config = ConfigDict(from_attributes=True)


class SharedTarget(BaseModel):
    type: str
    id: int
    business_name: Optional[str] = None
    business_description: Optional[str] = None
    status: Optional[str] = None
    domain_available: Optional[bool] = None
    created_at: Optional[datetime] = None


class PublicShareResponse(BaseModel):
    """
    Public (unauthenticated) share view.
    Never contains the numeric id, owner or password data.
    """

    uuid: str
    title: Optional[str] = None
    description: Optional[str] = None
    share_type: str
    view_count: int
    created_at: datetime
    settings: ShareSettings
    shareable: Optional[SharedTarget] = None
    logos: Optional[List[SharedLogo]] = None
