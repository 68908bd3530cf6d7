"""
Export model: a rendered artifact with a bounded lifetime.
"""
import re
import unicodedata
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.schemas.options import ExportSettings, ExportType
from app.utils.clock import utcnow

if TYPE_CHECKING:
    from app.models.user import User

FILENAME_SLUG_MAX_LENGTH = 30

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def slugify(value: Optional[str], max_length: int = FILENAME_SLUG_MAX_LENGTH) -> str:
    """ASCII, lowercase, hyphen-separated; empty when nothing usable remains."""
    if not value:
        return ""
    normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug[:max_length].rstrip("-")


def format_file_size(size: Optional[int]) -> str:
    """Human readable size, e.g. 1536 -> '1.5 KB'."""
    value = float(size or 0)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {_SIZE_UNITS[unit]}"


class Export(Base):
    """
    Downloadable PDF/CSV/JSON artifact rendered from an owned entity.

    The artifact at `file_path` and this row are created together and
    deleted together (owner delete or expiry sweep).
    """

    __tablename__ = "exports"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), unique=True, index=True, nullable=False)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Polymorphic target (type tag + id)
    exportable_type: Mapped[str] = mapped_column(String(50), nullable=False)
    exportable_id: Mapped[int] = mapped_column(Integer, nullable=False)

    export_type: Mapped[str] = mapped_column(String(10), nullable=False)
    settings: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Artifact
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Slug of the target's name at render time (download filename stem)
    filename_stem: Mapped[str] = mapped_column(String(64), default="export", nullable=False)

    # Statistics
    download_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_downloaded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    owner: Mapped["User"] = relationship("User", back_populates="exports")

    __table_args__ = (
        Index("ix_exports_exportable", "exportable_type", "exportable_id"),
    )

    @property
    def export_settings(self) -> ExportSettings:
        return ExportSettings.model_validate(self.settings or {})

    @property
    def format(self) -> ExportType:
        return ExportType(self.export_type)

    @property
    def content_type(self) -> str:
        return self.format.content_type

    @property
    def download_filename(self) -> str:
        return f"{self.filename_stem or 'export'}.{self.export_type}"

    @property
    def formatted_file_size(self) -> str:
        return format_file_size(self.file_size)

    @property
    def download_path(self) -> str:
        return f"/exports/{self.uuid}/download"

    @property
    def public_download_path(self) -> str:
        return f"/downloads/{self.uuid}"

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at < (now or utcnow())

    def __repr__(self) -> str:
        return f"<Export(id={self.id}, uuid={self.uuid[:8]}..., type={self.export_type})>"
