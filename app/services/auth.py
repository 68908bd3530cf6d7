"""
Owner accounts: registration, login, lookup and the profile totals.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models.export import Export
from app.models.share import Share
from app.models.user import User
from app.schemas.user import OwnerStats, Token, UserCreate
from app.utils.clock import utcnow
from app.utils.logger import log_info, log_warning
from app.utils.security import create_access_token, hash_password, verify_password


class AuthService:
    """Service for owner authentication."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def register(self, user_data: UserCreate) -> User:
        """
        Register a new owner account.

        Raises:
            ValueError: Email or username already taken
        """
        result = await self.db.execute(
            select(User).where(or_(User.email == user_data.email, User.username == user_data.username))
        )
        existing = result.scalars().first()
        if existing is not None:
            reason = "email_exists" if existing.email == user_data.email else "username_exists"
            log_warning("Registration rejected", event="auth", reason=reason)
            raise ValueError("Email already registered" if reason == "email_exists" else "Username already taken")

        user = User(
            email=user_data.email,
            username=user_data.username,
            hashed_password=hash_password(user_data.password),
        )
        self.db.add(user)
        await self.db.flush()
        await self.db.refresh(user)
        log_info("Registration", event="auth", user_id=user.id)
        return user

    async def authenticate(self, email: str, password: str) -> Optional[User]:
        user = await self.get_user_by_email(email)
        if user is None:
            log_warning("Login failed", event="auth", reason="user_not_found")
            return None
        if not user.is_active:
            log_warning("Login failed", event="auth", user_id=user.id, reason="inactive")
            return None
        if not verify_password(password, user.hashed_password):
            log_warning("Login failed", event="auth", user_id=user.id, reason="invalid_password")
            return None
        return user

    async def login(self, email: str, password: str) -> Optional[Token]:
        """Token for valid credentials, None otherwise."""
        user = await self.authenticate(email, password)
        if user is None:
            return None
        log_info("Login", event="auth", user_id=user.id)
        return Token(
            access_token=create_access_token(user.id),
            expires_in=get_settings().access_token_expire_minutes * 60,
        )

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def get_owner_stats(self, user: User, now: Optional[datetime] = None) -> OwnerStats:
        now = now or utcnow()
        accessible = Share.is_active.is_(True) & or_(Share.expires_at.is_(None), Share.expires_at > now)
        shares = (await self.db.execute(
            select(
                func.count(Share.id),
                func.coalesce(func.sum(case((accessible, 1), else_=0)), 0),
                func.coalesce(func.sum(Share.view_count), 0),
            ).where(Share.user_id == user.id)
        )).one()
        exports = (await self.db.execute(
            select(
                func.count(Export.id),
                func.coalesce(func.sum(case((Export.expires_at >= now, 1), else_=0)), 0),
                func.coalesce(func.sum(Export.download_count), 0),
            ).where(Export.user_id == user.id)
        )).one()
        return OwnerStats(
            total_shares=shares[0],
            accessible_shares=int(shares[1]),
            total_share_views=int(shares[2]),
            total_exports=exports[0],
            live_exports=int(exports[1]),
            total_downloads=int(exports[2]),
        )
