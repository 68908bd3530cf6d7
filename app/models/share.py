"""
Share models: the shared record and its append-only access ledger.
"""
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.schemas.options import ShareSettings, ShareType
from app.utils.clock import utcnow

if TYPE_CHECKING:
    from app.models.user import User


class Share(Base):
    """
    Public or password-protected read-only view of an owned entity.

    Addressed externally only by `uuid`. Never physically removed in normal
    flow: owners deactivate, the retention job purges long-inactive rows.
    """

    __tablename__ = "shares"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), unique=True, index=True, nullable=False)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Polymorphic target (type tag + id)
    shareable_type: Mapped[str] = mapped_column(String(50), nullable=False)
    shareable_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Access policy
    share_type: Mapped[str] = mapped_column(String(32), nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)

    # Display
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    settings: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Statistics (only written by the access-recording path)
    view_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_viewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    owner: Mapped["User"] = relationship("User", back_populates="shares")
    accesses: Mapped[List["ShareAccess"]] = relationship(
        "ShareAccess",
        back_populates="share",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_shares_shareable", "shareable_type", "shareable_id"),
    )

    @property
    def share_settings(self) -> ShareSettings:
        return ShareSettings.model_validate(self.settings or {})

    @property
    def requires_password(self) -> bool:
        return self.share_type == ShareType.PASSWORD_PROTECTED.value

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at < (now or utcnow())

    def is_accessible(self, now: Optional[datetime] = None) -> bool:
        """Active and not expired. Password state is per session and not checked here."""
        return self.is_active and not self.is_expired(now)

    def share_path(self) -> str:
        return f"/share/{self.uuid}"

    def __repr__(self) -> str:
        return f"<Share(id={self.id}, uuid={self.uuid[:8]}..., type={self.share_type})>"


class ShareAccess(Base):
    """One recorded view of a share. Immutable once written."""

    __tablename__ = "share_accesses"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    share_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shares.id", ondelete="CASCADE"), nullable=False
    )
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    referrer: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    accessed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    share: Mapped["Share"] = relationship("Share", back_populates="accesses")

    __table_args__ = (
        Index("ix_share_accesses_share_accessed", "share_id", "accessed_at"),
        Index("ix_share_accesses_share_ip", "share_id", "ip_address"),
    )

    def __repr__(self) -> str:
        return f"<ShareAccess(id={self.id}, share_id={self.share_id})>"
