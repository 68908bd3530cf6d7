"""
Logo generation records produced by the generation pipeline.

This service only reads them: they are the entities owners share and export.
"""
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.utils.clock import utcnow

if TYPE_CHECKING:
    from app.models.user import User


class GenerationStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class LogoGeneration(Base):
    """A batch of logos generated for one business."""

    __tablename__ = "logo_generations"

    # Tag used in shareable_type / exportable_type columns
    target_type = "logo_generation"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Business information
    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    business_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=GenerationStatus.PENDING.value, nullable=False
    )

    # Domain availability (filled by the domain checker)
    domain_available: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    domain_checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    # Relationships
    owner: Mapped["User"] = relationship("User", back_populates="logo_generations")
    generated_logos: Mapped[List["GeneratedLogo"]] = relationship(
        "GeneratedLogo",
        back_populates="logo_generation",
        cascade="all, delete-orphan",
        order_by="GeneratedLogo.id",
    )

    @property
    def owner_id(self) -> int:
        return self.user_id

    @property
    def display_name(self) -> str:
        return self.business_name

    @property
    def is_completed(self) -> bool:
        return self.status == GenerationStatus.COMPLETED.value

    def __repr__(self) -> str:
        return f"<LogoGeneration(id={self.id}, status={self.status})>"


class GeneratedLogo(Base):
    """One generated logo image. Only its metadata is shared or exported."""

    __tablename__ = "generated_logos"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    logo_generation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("logo_generations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    style: Mapped[str] = mapped_column(String(50), nullable=False)
    variation_number: Mapped[int] = mapped_column(Integer, default=1)
    prompt_used: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    original_file_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    image_width: Mapped[int] = mapped_column(Integer, default=1024)
    image_height: Mapped[int] = mapped_column(Integer, default=1024)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    logo_generation: Mapped["LogoGeneration"] = relationship(
        "LogoGeneration", back_populates="generated_logos"
    )

    def __repr__(self) -> str:
        return f"<GeneratedLogo(id={self.id}, style={self.style})>"
