"""
User model for authentication and ownership of shares and exports.
"""
from datetime import datetime
from typing import TYPE_CHECKING, List

from sqlalchemy import String, DateTime, Boolean
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.utils.clock import utcnow

if TYPE_CHECKING:
    from app.models.export import Export
    from app.models.logo_generation import LogoGeneration
    from app.models.share import Share


class User(Base):
    """User model for storing user account information."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False
    )
    username: Mapped[str] = mapped_column(
        String(100), unique=True, index=True, nullable=False
    )
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    # Relationships
    logo_generations: Mapped[List["LogoGeneration"]] = relationship(
        "LogoGeneration", back_populates="owner", cascade="all, delete-orphan"
    )
    shares: Mapped[List["Share"]] = relationship(
        "Share", back_populates="owner", cascade="all, delete-orphan"
    )
    exports: Mapped[List["Export"]] = relationship(
        "Export", back_populates="owner", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id})>"
