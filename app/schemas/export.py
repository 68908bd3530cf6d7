"""
Export related Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict


class ExportCreate(BaseModel):
    """Schema for creating an export. Ranges and ownership are checked by ExportService."""

    exportable_type: str = Field(default="logo_generation", description="Target entity type tag")
    exportable_id: int = Field(..., description="Target entity id (owned, completed)")
    export_type: str = Field(..., description="pdf | csv | json")
    expires_in_days: int = Field(default=7, description="1-30 days")
    template: str = Field(default="default", description="default | professional")
    include_domains: bool = False
    include_metadata: bool = False
    include_logos: bool = Field(default=False, description="Ignored for csv")
    include_branding: bool = False


class ExportTarget(BaseModel):
    type: str
    id: int
    business_name: Optional[str] = None


class ExportResponse(BaseModel):
    """Owner-facing export representation."""

    id: int
    uuid: str
    export_type: str
    file_size: int
    formatted_file_size: str
    download_count: int
    download_url: str
    public_download_url: str
    is_expired: bool
    has_been_downloaded: bool
    expires_at: datetime
    created_at: datetime
    last_downloaded_at: Optional[datetime] = None
    exportable: Optional[ExportTarget] = None

    model_config = ConfigDict(from_attributes=True)


class ExportStats(BaseModel):
    total: int
    by_type: Dict[str, int]
    total_downloads: int
    total_size: int


class ExportListResponse(BaseModel):
    items: List[ExportResponse]
    total: int
    page: int
    per_page: int
    last_page: int
    has_more_pages: bool
    stats: ExportStats


class FormatCount(BaseModel):
    export_type: str
    count: int


class ExportAnalytics(BaseModel):
    total_exports: int
    total_downloads: int
    popular_formats: List[FormatCount]
    recent_activity: int = Field(description="Exports created in the last 30 days")


class CleanupResponse(BaseModel):
    message: str
    deleted_count: int
