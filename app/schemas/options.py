"""
Enumerations and typed settings objects shared by models, services and schemas.
"""
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ShareType(str, Enum):
    PUBLIC = "public"
    PASSWORD_PROTECTED = "password_protected"


class ExportType(str, Enum):
    PDF = "pdf"
    CSV = "csv"
    JSON = "json"

    @property
    def content_type(self) -> str:
        return EXPORT_CONTENT_TYPES[self]


EXPORT_CONTENT_TYPES = {
    ExportType.PDF: "application/pdf",
    ExportType.CSV: "text/csv",
    ExportType.JSON: "application/json",
}


class ExportTemplate(str, Enum):
    DEFAULT = "default"
    PROFESSIONAL = "professional"


class ShareSettings(BaseModel):
    """
    Display toggles for a public share.

    None means "not set", which the public view treats as shown.
    """

    show_title: Optional[bool] = None
    show_description: Optional[bool] = None
    show_logos: Optional[bool] = None
    show_domain_status: Optional[bool] = None

    model_config = ConfigDict(extra="ignore")

    def shows(self, key: str) -> bool:
        return getattr(self, key) is not False

    def merged(self, other: "ShareSettings") -> "ShareSettings":
        """Apply only the keys explicitly set on `other`."""
        return self.model_copy(update=other.model_dump(exclude_unset=True))


class ExportSettings(BaseModel):
    """Export-time options. Booleans default to off."""

    template: ExportTemplate = ExportTemplate.DEFAULT
    include_domains: bool = False
    include_metadata: bool = False
    include_logos: bool = False
    include_branding: bool = False

    model_config = ConfigDict(extra="ignore", use_enum_values=False)


class Page(BaseModel, Generic[T]):
    """Offset pagination envelope. Items may be ORM objects."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    items: List[T]
    total: int
    page: int = Field(ge=1)
    per_page: int = Field(ge=1)
    last_page: int
    has_more_pages: bool

    @classmethod
    def build(cls, items: List[T], total: int, page: int, per_page: int) -> "Page[T]":
        last_page = max(1, -(-total // per_page))
        return cls(
            items=items,
            total=total,
            page=page,
            per_page=per_page,
            last_page=last_page,
            has_more_pages=page < last_page,
        )
