"""
Share service: creating, updating and validating public shares, recording
views into the access ledger and aggregating analytics.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import delete, distinct, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.exceptions import AuthorizationError, NotFoundError, RateLimitedError, ValidationError
from app.models.logo_generation import LogoGeneration
from app.models.share import Share, ShareAccess
from app.models.user import User
from app.schemas.options import Page, ShareSettings, ShareType
from app.schemas.share import ShareCreate, ShareUpdate
from app.services.rate_limiter import AttemptCounter, get_share_creation_counter
from app.services.share_monitoring import AccessFlags, ShareMonitoringService
from app.services.share_session import ShareSessionStore, share_session_key
from app.services.targets import SqlTargetResolver, TargetResolver
from app.utils.clock import to_naive_utc, utcnow
from app.utils.logger import log_info, log_warning
from app.utils.prometheus_metrics import share_creation_total, share_creation_throttled_total
from app.utils.sanitize import TITLE_PATTERN, clean_text, escape_text
from app.utils.security import hash_secret, new_opaque_id, verify_secret

settings = get_settings()

TITLE_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 1000
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 255
MAX_PER_PAGE = 100

DEFAULT_SOCIAL_TITLE = "Shared Logo Designs"
DEFAULT_SOCIAL_DESCRIPTION = "Check out these amazing logo designs created with our AI-powered generator."

# Access result statuses (also used as metric labels)
ACCESS_OK = "ok"
ACCESS_NOT_FOUND = "not_found"
ACCESS_EXPIRED = "expired"
ACCESS_PASSWORD_REQUIRED = "password_required"
ACCESS_INVALID_PASSWORD = "invalid_password"


@dataclass
class ShareAccessResult:
    success: bool
    share: Optional[Share] = None
    error: Optional[str] = None
    status: str = ACCESS_OK
    requires_password: bool = False


def _failure(status: str, error: str, share: Optional[Share] = None, requires_password: bool = False) -> ShareAccessResult:
    return ShareAccessResult(
        success=False, share=share, error=error, status=status, requires_password=requires_password
    )


class ShareService:
    """
    Service for handling share operations.

    Collaborators (target resolver, attempt counter, session store) are
    injected; the defaults are the database resolver, the process-wide
    creation counter and no session.
    """

    def __init__(
        self,
        db: AsyncSession,
        resolver: Optional[TargetResolver] = None,
        rate_limiter: Optional[AttemptCounter] = None,
        session_store: Optional[ShareSessionStore] = None,
    ):
        self.db = db
        self.resolver = resolver or SqlTargetResolver(db)
        self.rate_limiter = rate_limiter or get_share_creation_counter()
        self.session_store = session_store
        self.monitor = ShareMonitoringService(db)

    # ============== Lookup ==============

    async def get_share_by_uuid(self, share_uuid: str) -> Optional[Share]:
        result = await self.db.execute(select(Share).where(Share.uuid == share_uuid))
        return result.scalar_one_or_none()

    async def get_owned_share(self, share_id: int, owner: User) -> Share:
        """
        Get a share by numeric id for its owner.

        Raises:
            NotFoundError: No such share
            AuthorizationError: Share belongs to someone else
        """
        share = await self.db.get(Share, share_id)
        if share is None:
            raise NotFoundError("Share not found")
        self._authorize(share, owner)
        return share

    async def get_shared_target(self, share: Share) -> Optional[LogoGeneration]:
        return await self.resolver.load(share.shareable_type, share.shareable_id)

    def _authorize(self, share: Share, owner: User) -> None:
        if share.user_id != owner.id:
            log_warning("Share access by non-owner", event="share", share_id=share.id, user_id=owner.id)
            raise AuthorizationError("This action is unauthorized.")

    # ============== Validation ==============

    def _validate_title(self, raw: Optional[str], errors: Dict[str, List[str]]) -> Optional[str]:
        title = clean_text(raw)
        if title is None:
            return None
        if len(title) > TITLE_MAX_LENGTH:
            errors.setdefault("title", []).append(
                f"The title must not be greater than {TITLE_MAX_LENGTH} characters."
            )
        elif not TITLE_PATTERN.match(title):
            errors.setdefault("title", []).append(
                "The title may only contain letters, numbers, spaces, and basic punctuation."
            )
        return escape_text(title)

    def _validate_description(self, raw: Optional[str], errors: Dict[str, List[str]]) -> Optional[str]:
        description = clean_text(raw)
        if description is None:
            return None
        if len(description) > DESCRIPTION_MAX_LENGTH:
            errors.setdefault("description", []).append(
                f"The description must not be greater than {DESCRIPTION_MAX_LENGTH} characters."
            )
        return escape_text(description)

    def _validate_expiry(
        self, raw: Optional[datetime], now: datetime, errors: Dict[str, List[str]]
    ) -> Optional[datetime]:
        expires_at = to_naive_utc(raw)
        if expires_at is None:
            return None
        if expires_at <= now:
            errors.setdefault("expires_at", []).append("The expiration date must be in the future.")
        elif expires_at > now + timedelta(days=settings.share_max_expiry_days):
            errors.setdefault("expires_at", []).append(
                "The expiration date cannot be more than 1 year from now."
            )
        return expires_at

    async def _validate_share_data(self, owner: User, data: ShareCreate, now: datetime) -> dict:
        errors: Dict[str, List[str]] = {}

        share_type: Optional[ShareType] = None
        try:
            share_type = ShareType(data.share_type)
        except ValueError:
            errors["share_type"] = ["The selected share type is invalid."]

        if not self.resolver.is_known_type(data.shareable_type):
            errors["shareable_type"] = ["The selected item type is invalid."]
        else:
            target = await self.resolver.load(data.shareable_type, data.shareable_id)
            if target is None or target.owner_id != owner.id:
                errors["shareable_id"] = ["The selected item is invalid or you do not have access to it."]

        password_hash = None
        if share_type == ShareType.PASSWORD_PROTECTED:
            if not data.password:
                errors["password"] = ["A password is required for password-protected shares."]
            elif len(data.password) < PASSWORD_MIN_LENGTH:
                errors["password"] = [f"The password must be at least {PASSWORD_MIN_LENGTH} characters."]
            elif len(data.password) > PASSWORD_MAX_LENGTH:
                errors["password"] = [f"The password must not be greater than {PASSWORD_MAX_LENGTH} characters."]

        title = self._validate_title(data.title, errors)
        description = self._validate_description(data.description, errors)
        expires_at = self._validate_expiry(data.expires_at, now, errors)

        if errors:
            raise ValidationError(errors)

        # hash only after everything else passed; bcrypt is deliberately slow
        if share_type == ShareType.PASSWORD_PROTECTED:
            password_hash = hash_secret(data.password)

        return {
            "share_type": share_type.value,
            "password_hash": password_hash,
            "title": title,
            "description": description,
            "expires_at": expires_at,
            "settings": (data.settings or ShareSettings()).model_dump(),
        }

    # ============== Share CRUD ==============

    async def create_share(
        self,
        owner: User,
        data: ShareCreate,
        now: Optional[datetime] = None,
    ) -> Share:
        """
        Create a share for an owned target.

        Args:
            owner: User creating the share
            data: Share creation request
            now: Current time (defaults to utcnow)

        Returns:
            Created Share

        Raises:
            RateLimitedError: Owner exceeded the creation window
            ValidationError: Invalid request or target not owned
        """
        now = now or utcnow()

        decision = await self.rate_limiter.hit(f"share-creation:{owner.id}")
        if not decision.allowed:
            share_creation_throttled_total.inc()
            share_creation_total.labels(share_type=str(data.share_type)[:32], result="throttled").inc()
            log_warning(
                "Share creation rate limited",
                event="share",
                user_id=owner.id,
                retry_after=decision.retry_after,
            )
            raise RateLimitedError(decision.retry_after)

        try:
            fields = await self._validate_share_data(owner, data, now)
        except ValidationError as e:
            share_creation_total.labels(share_type=str(data.share_type)[:32], result="invalid").inc()
            log_warning("Share validation failed", event="share", user_id=owner.id, fields=sorted(e.errors))
            raise

        share = Share(
            uuid=new_opaque_id(),
            user_id=owner.id,
            shareable_type=data.shareable_type,
            shareable_id=data.shareable_id,
            is_active=True,
            view_count=0,
            **fields,
        )
        self.db.add(share)
        await self.db.flush()
        await self.db.refresh(share)

        share_creation_total.labels(share_type=share.share_type, result="success").inc()
        log_info(
            "Share created",
            event="share",
            share_id=share.id,
            share_type=share.share_type,
            user_id=owner.id,
            has_expiration=share.expires_at is not None,
        )
        return share

    async def update_share(
        self,
        share: Share,
        owner: User,
        data: ShareUpdate,
        now: Optional[datetime] = None,
    ) -> Share:
        """
        Merge title, description, settings and expiry into an owned share.
        Only fields present in `data` are applied.
        """
        self._authorize(share, owner)
        now = now or utcnow()
        provided = data.model_fields_set
        errors: Dict[str, List[str]] = {}
        changes: dict = {}

        if "title" in provided:
            changes["title"] = self._validate_title(data.title, errors)
        if "description" in provided:
            changes["description"] = self._validate_description(data.description, errors)
        if "expires_at" in provided:
            changes["expires_at"] = self._validate_expiry(data.expires_at, now, errors)
        if "settings" in provided and data.settings is not None:
            changes["settings"] = share.share_settings.merged(data.settings).model_dump()

        if errors:
            raise ValidationError(errors)

        for key, value in changes.items():
            setattr(share, key, value)
        await self.db.flush()
        await self.db.refresh(share)
        log_info("Share updated", event="share", share_id=share.id, fields=sorted(changes))
        return share

    async def deactivate_share(self, share: Share, owner: User) -> Share:
        """Soft-delete: the record and its access events are kept."""
        self._authorize(share, owner)
        share.is_active = False
        await self.db.flush()
        await self.db.refresh(share)
        log_info("Share deactivated", event="share", share_id=share.id, user_id=owner.id)
        return share

    # ============== Public access ==============

    async def validate_share_access(
        self,
        share_uuid: str,
        password: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ShareAccessResult:
        """
        Check whether a share can be viewed right now.

        Password-protected shares pass when the session store already holds
        the flag for this share, or when `password` verifies. Persisting the
        flag after a successful password is the caller's job.
        """
        share = await self.get_share_by_uuid(share_uuid)
        if share is None or not share.is_active:
            return _failure(ACCESS_NOT_FOUND, "Share not found or inactive")

        if share.is_expired(now or utcnow()):
            return _failure(ACCESS_EXPIRED, "Share has expired", share)

        if share.requires_password:
            authenticated = bool(
                self.session_store is not None
                and self.session_store.get(share_session_key(share.uuid))
            )
            if not authenticated:
                if password is None:
                    return _failure(ACCESS_PASSWORD_REQUIRED, "Password required", share, requires_password=True)
                if not verify_secret(password, share.password_hash):
                    log_warning("Share password rejected", event="share", share_id=share.id)
                    return _failure(ACCESS_INVALID_PASSWORD, "Invalid password", share, requires_password=True)

        return ShareAccessResult(success=True, share=share)

    async def record_share_access(
        self,
        share: Share,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        referrer: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AccessFlags:
        """
        Record one view: a new access event plus an in-place view_count increment.
        """
        now = now or utcnow()

        # single UPDATE ... SET view_count = view_count + 1; concurrent callers never lose increments
        await self.db.execute(
            update(Share)
            .where(Share.id == share.id)
            .values(view_count=Share.view_count + 1, last_viewed_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.add(ShareAccess(
            share_id=share.id,
            ip_address=ip_address[:45] if ip_address else None,
            user_agent=user_agent[:512] if user_agent else None,
            referrer=referrer[:2048] if referrer else None,
            accessed_at=now,
        ))
        await self.db.flush()
        await self.db.refresh(share, attribute_names=["view_count", "last_viewed_at"])

        return await self.monitor.monitor_access(share, ip_address, user_agent, now)

    # ============== Analytics ==============

    async def get_share_analytics(self, share: Share, now: Optional[datetime] = None) -> dict:
        """
        Aggregate the access ledger of one share.

        Returns:
            total_views, unique_visitors, recent_views (7 days), today_views,
            peak_day {date, views}, the top 10 referrers and a last-24h
            security summary
        """
        now = now or utcnow()
        today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        of_share = ShareAccess.share_id == share.id

        unique_visitors = (await self.db.execute(
            select(func.count(distinct(ShareAccess.ip_address))).where(of_share)
        )).scalar_one()
        recent_views = (await self.db.execute(
            select(func.count(ShareAccess.id)).where(of_share, ShareAccess.accessed_at >= now - timedelta(days=7))
        )).scalar_one()
        today_views = (await self.db.execute(
            select(func.count(ShareAccess.id)).where(of_share, ShareAccess.accessed_at >= today_start)
        )).scalar_one()

        day = func.date(ShareAccess.accessed_at).label("day")
        views = func.count(ShareAccess.id).label("views")
        peak = (await self.db.execute(
            select(day, views).where(of_share).group_by(day).order_by(views.desc(), day.desc()).limit(1)
        )).first()

        referrer_views = func.count(ShareAccess.id).label("views")
        referrers = (await self.db.execute(
            select(ShareAccess.referrer, referrer_views)
            .where(of_share, ShareAccess.referrer.is_not(None))
            .group_by(ShareAccess.referrer)
            .order_by(referrer_views.desc())
            .limit(10)
        )).all()

        return {
            "total_views": share.view_count,
            "unique_visitors": unique_visitors,
            "recent_views": recent_views,
            "today_views": today_views,
            "peak_day": {"date": str(peak.day), "views": peak.views} if peak else None,
            "referrer_stats": [{"referrer": ref, "views": count} for ref, count in referrers],
            "security": await self.monitor.get_security_metrics(share, now=now),
        }

    def generate_social_media_metadata(self, share: Share, base_url: str = "") -> Dict[str, str]:
        """Open Graph / Twitter card tags for the public page. No side effects."""
        share_settings = share.share_settings
        title = share.title if share.title and share_settings.shows("show_title") else DEFAULT_SOCIAL_TITLE
        description = (
            share.description
            if share.description and share_settings.shows("show_description")
            else DEFAULT_SOCIAL_DESCRIPTION
        )
        url = f"{base_url.rstrip('/')}{share.share_path()}"
        return {
            "og:title": title,
            "og:description": description,
            "og:url": url,
            "og:type": "website",
            "og:site_name": settings.app_name,
            "og:locale": "en_US",
            "twitter:card": "summary_large_image",
            "twitter:title": title,
            "twitter:description": description,
            "twitter:url": url,
            "description": description,
            "author": settings.app_name,
        }

    # ============== Listing ==============

    async def get_user_shares(
        self,
        owner: User,
        page: int = 1,
        per_page: Optional[int] = None,
        share_type: Optional[str] = None,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Page[Share]:
        """
        Paginated shares of one owner, newest first.

        `search` matches title or description, case-insensitively.
        """
        page = max(1, page)
        per_page = min(max(1, per_page or settings.share_default_per_page), MAX_PER_PAGE)

        filters = [Share.user_id == owner.id]
        if share_type:
            filters.append(Share.share_type == share_type)
        if is_active is not None:
            filters.append(Share.is_active == is_active)
        if search and search.strip():
            escaped = search.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            pattern = f"%{escaped}%"
            filters.append(or_(
                Share.title.ilike(pattern, escape="\\"),
                Share.description.ilike(pattern, escape="\\"),
            ))

        total = (await self.db.execute(select(func.count(Share.id)).where(*filters))).scalar_one()
        result = await self.db.execute(
            select(Share)
            .where(*filters)
            .order_by(Share.created_at.desc(), Share.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return Page[Share].build(list(result.scalars().all()), total, page, per_page)

    # ============== Retention ==============

    async def deactivate_expired_shares(self, now: Optional[datetime] = None) -> int:
        """Flip is_active off for shares past their expiry."""
        now = now or utcnow()
        result = await self.db.execute(
            update(Share)
            .where(Share.is_active.is_(True), Share.expires_at.is_not(None), Share.expires_at < now)
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def purge_inactive_shares(self, now: Optional[datetime] = None, retention_days: Optional[int] = None) -> int:
        """Hard-delete shares inactive for longer than the retention period, with their access events."""
        now = now or utcnow()
        days = retention_days if retention_days is not None else settings.share_inactive_retention_days
        cutoff = now - timedelta(days=days)
        stale = select(Share.id).where(Share.is_active.is_(False), Share.updated_at < cutoff)
        # explicit delete of children; SQLite only cascades with foreign_keys enabled
        await self.db.execute(
            delete(ShareAccess)
            .where(ShareAccess.share_id.in_(stale))
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(
            delete(Share)
            .where(Share.is_active.is_(False), Share.updated_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def purge_old_accesses(self, now: Optional[datetime] = None, retention_days: Optional[int] = None) -> int:
        now = now or utcnow()
        days = retention_days if retention_days is not None else settings.share_access_retention_days
        result = await self.db.execute(
            delete(ShareAccess)
            .where(ShareAccess.accessed_at < now - timedelta(days=days))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
