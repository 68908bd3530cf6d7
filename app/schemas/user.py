"""
Owner account schemas: registration, login and the /auth/me profile.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, ConfigDict


class UserCreate(BaseModel):
    """Owner registration. bcrypt reads at most 72 bytes of the password."""

    email: EmailStr
    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=8, max_length=72)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class OwnerStats(BaseModel):
    """Totals across everything the owner has shared or exported."""

    total_shares: int = 0
    accessible_shares: int = Field(0, description="Active and not expired")
    total_share_views: int = 0
    total_exports: int = 0
    live_exports: int = Field(0, description="Not yet expired")
    total_downloads: int = 0


class UserResponse(BaseModel):
    """Owner profile. `stats` is filled on /auth/me only."""

    id: int
    email: EmailStr
    username: str
    is_active: bool
    created_at: datetime
    stats: Optional[OwnerStats] = None

    model_config = ConfigDict(from_attributes=True)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Seconds until the token expires")


class TokenPayload(BaseModel):
    """Claims of an owner bearer token (share-session cookies carry a scope and never decode to this)."""

    sub: int  # owner id
    exp: datetime
