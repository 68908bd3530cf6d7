"""
Pydantic schemas package.
All schemas are exported here for easy import.
"""
from app.schemas.user import (
    OwnerStats,
    UserCreate,
    UserResponse,
    UserLogin,
    Token,
    TokenPayload,
)
from app.schemas.options import (
    ExportSettings,
    ExportTemplate,
    ExportType,
    Page,
    ShareSettings,
    ShareType,
)
from app.schemas.share import (
    PublicShareResponse,
    ShareAnalytics,
    ShareCreate,
    ShareListResponse,
    SharePasswordRequest,
    ShareResponse,
    ShareUpdate,
)
from app.schemas.export import (
    ExportAnalytics,
    ExportCreate,
    ExportListResponse,
    ExportResponse,
    ExportStats,
)

__all__ = [
    # User schemas
    "OwnerStats",
    "UserCreate",
    "UserResponse",
    "UserLogin",
    "Token",
    "TokenPayload",
    # Options
    "ExportSettings",
    "ExportTemplate",
    "ExportType",
    "Page",
    "ShareSettings",
    "ShareType",
    # Share schemas
    "PublicShareResponse",
    "ShareAnalytics",
    "ShareCreate",
    "ShareListResponse",
    "SharePasswordRequest",
    "ShareResponse",
    "ShareUpdate",
    # Export schemas
    "ExportAnalytics",
    "ExportCreate",
    "ExportListResponse",
    "ExportResponse",
    "ExportStats",
]
