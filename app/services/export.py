"""
Export service: rendering owned entities to downloadable artifacts,
serving downloads and sweeping expired or orphaned artifacts.
"""
import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.exceptions import (
    AuthorizationError,
    ExportGenerationError,
    GoneError,
    NotFoundError,
    RenderError,
    ValidationError,
)
from app.models.export import Export, slugify
from app.models.user import User
from app.schemas.export import ExportCreate
from app.schemas.options import ExportSettings, ExportTemplate, ExportType, Page
from app.services.export_renderer import ExportRenderer, RenderedArtifact
from app.services.storage import ArtifactMissingError, ArtifactStorage, StorageError, get_storage_service
from app.services.targets import SqlTargetResolver, TargetResolver
from app.utils.clock import utcnow
from app.utils.logger import log_error, log_info, log_warning
from app.utils.prometheus_metrics import (
    export_cleanup_removed_total,
    export_creation_total,
    export_download_total,
    export_render_duration_seconds,
)
from app.utils.retry import retry_with_backoff
from app.utils.security import new_opaque_id

settings = get_settings()

ARTIFACT_PREFIX = "exports/"
MIN_EXPIRY_DAYS = 1
MAX_EXPIRY_DAYS = 30
MAX_PER_PAGE = 100


@dataclass
class DownloadPayload:
    content: bytes
    content_type: str
    filename: str


def artifact_key(export_uuid: str, export_type: str) -> str:
    return f"{ARTIFACT_PREFIX}{export_uuid}.{export_type}"


class ExportService:
    """Service for handling export operations."""

    def __init__(
        self,
        db: AsyncSession,
        storage: Optional[ArtifactStorage] = None,
        renderer: Optional[ExportRenderer] = None,
        resolver: Optional[TargetResolver] = None,
    ):
        self.db = db
        self.storage = storage or get_storage_service()
        self.renderer = renderer or ExportRenderer()
        self.resolver = resolver or SqlTargetResolver(db)

    # ============== Lookup ==============

    async def get_by_uuid(self, export_uuid: str) -> Optional[Export]:
        result = await self.db.execute(select(Export).where(Export.uuid == export_uuid))
        return result.scalar_one_or_none()

    async def get_export_for_owner(self, export_uuid: str, owner: User) -> Export:
        """
        Raises:
            NotFoundError: No such export
            AuthorizationError: Export belongs to someone else
        """
        export = await self.get_by_uuid(export_uuid)
        if export is None:
            raise NotFoundError("Export not found")
        if export.user_id != owner.id:
            raise AuthorizationError("This action is unauthorized.")
        return export

    async def get_export_target(self, export: Export):
        return await self.resolver.load(export.exportable_type, export.exportable_id)

    # ============== Create ==============

    async def _validate_export_data(self, owner: User, data: ExportCreate):
        errors: Dict[str, List[str]] = {}

        target = None
        if not self.resolver.is_known_type(data.exportable_type):
            errors["exportable_type"] = ["The selected item type is invalid."]
        else:
            target = await self.resolver.load(data.exportable_type, data.exportable_id)
            if target is None or target.owner_id != owner.id:
                errors["exportable_id"] = ["The selected item is invalid or you do not have access to it."]
                target = None
            elif not target.is_completed:
                errors["exportable_id"] = ["Only completed logo generations can be exported."]

        try:
            ExportType(data.export_type)
        except ValueError:
            errors["export_type"] = ["The export type must be one of: pdf, csv, json."]

        if not MIN_EXPIRY_DAYS <= data.expires_in_days <= MAX_EXPIRY_DAYS:
            errors["expires_in_days"] = [
                f"The expiration must be between {MIN_EXPIRY_DAYS} and {MAX_EXPIRY_DAYS} days."
            ]

        try:
            ExportTemplate(data.template)
        except ValueError:
            errors["template"] = ["The template must be one of: default, professional."]

        if errors:
            raise ValidationError(errors)
        return target

    async def _render(self, export_type: ExportType, target, export_settings: ExportSettings,
                      owner: User, now: datetime) -> RenderedArtifact:
        started = time.perf_counter()
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(
                    self.renderer.render,
                    export_type.value,
                    target,
                    export_settings,
                    owner.email,
                    now,
                ),
                timeout=settings.export_render_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise ExportGenerationError(
                "Export generation timed out. Please try again.", cause=e, transient=True
            ) from e
        except RenderError as e:
            raise ExportGenerationError(f"Export generation failed: {e}", cause=e) from e
        except Exception as e:
            raise ExportGenerationError("Export generation failed.", cause=e) from e
        finally:
            export_render_duration_seconds.labels(export_type=export_type.value).observe(
                time.perf_counter() - started
            )

    async def create_export(
        self,
        owner: User,
        data: ExportCreate,
        now: Optional[datetime] = None,
    ) -> Export:
        """
        Render, store and record an export. All or nothing: a failure at any
        step leaves neither a record nor an artifact behind.

        Raises:
            ValidationError: Bad request, target not owned or not completed
            ExportGenerationError: Rendering or storage failed
        """
        now = now or utcnow()
        try:
            target = await self._validate_export_data(owner, data)
        except ValidationError as e:
            export_creation_total.labels(export_type=str(data.export_type)[:16], result="invalid").inc()
            log_warning("Export validation failed", event="export", user_id=owner.id, fields=sorted(e.errors))
            raise

        export_type = ExportType(data.export_type)
        export_settings = ExportSettings(
            template=ExportTemplate(data.template),
            include_domains=data.include_domains,
            include_metadata=data.include_metadata,
            # CSV has no place for per-logo rows
            include_logos=data.include_logos and export_type != ExportType.CSV,
            include_branding=data.include_branding,
        )

        try:
            artifact = await self._render(export_type, target, export_settings, owner, now)
        except ExportGenerationError as e:
            export_creation_total.labels(export_type=export_type.value, result="render_failed").inc()
            log_error(
                "Export rendering failed",
                event="export",
                user_id=owner.id,
                export_type=export_type.value,
                transient=e.transient,
                error_type=type(e.cause).__name__,
            )
            raise

        export_uuid = new_opaque_id()
        key = artifact_key(export_uuid, export_type.value)
        try:
            await retry_with_backoff(
                lambda: self.storage.put(key, artifact.content, artifact.content_type),
                max_attempts=3,
                retryable_exceptions=(StorageError,),
                target="storage.put",
            )
        except StorageError as e:
            export_creation_total.labels(export_type=export_type.value, result="storage_failed").inc()
            log_error("Export artifact write failed", event="export", user_id=owner.id, object=key)
            raise ExportGenerationError(
                "Export could not be stored. Please try again.", cause=e, transient=True
            ) from e

        export = Export(
            uuid=export_uuid,
            user_id=owner.id,
            exportable_type=data.exportable_type,
            exportable_id=data.exportable_id,
            export_type=export_type.value,
            settings=export_settings.model_dump(mode="json"),
            file_path=key,
            file_size=artifact.byte_count,
            filename_stem=slugify(target.display_name) or "export",
            download_count=0,
            expires_at=now + timedelta(days=data.expires_in_days),
            created_at=now,
        )
        self.db.add(export)
        try:
            await self.db.flush()
        except Exception:
            try:
                await self.storage.delete(key)
            except StorageError:
                # the orphan sweep removes it later
                log_error(
                    "Artifact not removed after failed export insert",
                    exc_info=True,
                    event="export",
                    object=key,
                )
            export_creation_total.labels(export_type=export_type.value, result="db_failed").inc()
            raise
        await self.db.refresh(export)

        export_creation_total.labels(export_type=export_type.value, result="success").inc()
        log_info(
            "Export created",
            event="export",
            export_id=export.id,
            export_type=export.export_type,
            user_id=owner.id,
            file_size=export.file_size,
        )
        return export

    # ============== Download ==============

    async def serve_download(self, export: Export, now: Optional[datetime] = None) -> DownloadPayload:
        """
        Count one download and return the artifact bytes.

        The counter only moves when the artifact exists and the export has
        not expired; the bytes are read before the caller responds.

        Raises:
            NotFoundError: Artifact missing from storage
            GoneError: Export expired or purged concurrently
        """
        now = now or utcnow()

        if not await self.storage.exists(export.file_path):
            export_download_total.labels(result="missing").inc()
            log_warning("Export artifact missing", event="export", export_id=export.id, object=export.file_path)
            raise NotFoundError("Export file not found")

        if export.is_expired(now):
            export_download_total.labels(result="expired").inc()
            raise GoneError("Export has expired")

        result = await self.db.execute(
            update(Export)
            .where(Export.id == export.id, Export.expires_at >= now)
            .values(download_count=Export.download_count + 1, last_downloaded_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            export_download_total.labels(result="expired").inc()
            raise GoneError("Export has expired")

        try:
            content = await self.storage.get(export.file_path)
        except ArtifactMissingError as e:
            # purged between the existence check and the read; get_db rolls the increment back
            export_download_total.labels(result="missing").inc()
            raise NotFoundError("Export file not found") from e

        await self.db.refresh(export, attribute_names=["download_count", "last_downloaded_at"])
        export_download_total.labels(result="success").inc()
        log_info(
            "Export downloaded",
            event="export",
            export_id=export.id,
            download_count=export.download_count,
        )
        return DownloadPayload(
            content=content,
            content_type=export.content_type,
            filename=export.download_filename,
        )

    # ============== Delete / cleanup ==============

    async def delete_export(self, export: Export, owner: User) -> None:
        """Remove the record, then its artifact. A missing artifact is fine."""
        if export.user_id != owner.id:
            raise AuthorizationError("This action is unauthorized.")
        key = export.file_path
        await self.db.delete(export)
        await self.db.flush()
        removed = await self.storage.delete(key)
        log_info("Export deleted", event="export", export_id=export.id, user_id=owner.id, artifact_removed=removed)

    async def cleanup_expired_exports(self, now: Optional[datetime] = None, batch_size: int = 100) -> int:
        """
        Delete expired exports and their artifacts.

        Each record is removed with a conditional DELETE before its file, so
        a download racing the sweep sees either a live export or none at all.

        Returns:
            Number of records actually deleted by this run
        """
        now = now or utcnow()
        deleted = 0
        freed_bytes = 0
        last_id = 0

        while True:
            rows = (await self.db.execute(
                select(Export.id, Export.file_path, Export.file_size)
                .where(Export.expires_at < now, Export.id > last_id)
                .order_by(Export.id)
                .limit(batch_size)
            )).all()
            if not rows:
                break

            for export_id, file_path, file_size in rows:
                last_id = export_id
                result = await self.db.execute(
                    delete(Export)
                    .where(Export.id == export_id, Export.expires_at < now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    continue
                await self.db.commit()
                deleted += 1
                freed_bytes += file_size or 0
                try:
                    await self.storage.delete(file_path)
                except StorageError:
                    # record is gone; the orphan sweep picks the file up later
                    log_warning(
                        "Expired export artifact not removed",
                        exc_info=True,
                        event="export_cleanup",
                        export_id=export_id,
                        object=file_path,
                    )

        if deleted:
            export_cleanup_removed_total.inc(deleted)
        log_info("Expired exports cleaned up", event="export_cleanup", deleted_count=deleted, freed_bytes=freed_bytes)
        return deleted

    async def cleanup_orphaned_artifacts(
        self,
        now: Optional[datetime] = None,
        min_age_hours: Optional[int] = None,
    ) -> int:
        """Remove stored artifacts with no export record, older than `min_age_hours`."""
        now = now or utcnow()
        min_age = timedelta(hours=min_age_hours if min_age_hours is not None else settings.export_orphan_min_age_hours)

        objects = await self.storage.list(ARTIFACT_PREFIX)
        candidates = [obj for obj in objects if obj.modified_at < now - min_age]
        if not candidates:
            return 0

        known = set((await self.db.execute(
            select(Export.file_path).where(Export.file_path.in_([obj.key for obj in candidates]))
        )).scalars().all())

        removed = 0
        for obj in candidates:
            if obj.key in known:
                continue
            if await self.storage.delete(obj.key):
                removed += 1
        if removed:
            log_info("Orphaned export artifacts removed", event="export_cleanup", removed_count=removed)
        return removed

    # ============== Listing / analytics ==============

    async def get_user_exports(
        self,
        owner: User,
        page: int = 1,
        per_page: Optional[int] = None,
        export_type: Optional[str] = None,
    ) -> Page[Export]:
        page = max(1, page)
        per_page = min(max(1, per_page or settings.share_default_per_page), MAX_PER_PAGE)

        filters = [Export.user_id == owner.id]
        if export_type:
            filters.append(Export.export_type == export_type)

        total = (await self.db.execute(select(func.count(Export.id)).where(*filters))).scalar_one()
        result = await self.db.execute(
            select(Export)
            .where(*filters)
            .order_by(Export.created_at.desc(), Export.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return Page[Export].build(list(result.scalars().all()), total, page, per_page)

    async def get_user_export_stats(self, owner: User) -> dict:
        totals = (await self.db.execute(
            select(
                func.count(Export.id),
                func.coalesce(func.sum(Export.download_count), 0),
                func.coalesce(func.sum(Export.file_size), 0),
            ).where(Export.user_id == owner.id)
        )).one()
        by_type_rows = (await self.db.execute(
            select(Export.export_type, func.count(Export.id))
            .where(Export.user_id == owner.id)
            .group_by(Export.export_type)
        )).all()
        return {
            "total": totals[0],
            "by_type": {export_type: count for export_type, count in by_type_rows},
            "total_downloads": int(totals[1]),
            "total_size": int(totals[2]),
        }

    async def get_export_analytics(self, owner: User, now: Optional[datetime] = None) -> dict:
        """Totals, top 5 formats and exports created in the last 30 days."""
        now = now or utcnow()
        owned = Export.user_id == owner.id

        total_exports, total_downloads = (await self.db.execute(
            select(func.count(Export.id), func.coalesce(func.sum(Export.download_count), 0)).where(owned)
        )).one()

        count = func.count(Export.id).label("count")
        popular = (await self.db.execute(
            select(Export.export_type, count)
            .where(owned)
            .group_by(Export.export_type)
            .order_by(count.desc())
            .limit(5)
        )).all()

        recent = (await self.db.execute(
            select(func.count(Export.id)).where(owned, Export.created_at >= now - timedelta(days=30))
        )).scalar_one()

        return {
            "total_exports": total_exports,
            "total_downloads": int(total_downloads),
            "popular_formats": [{"export_type": t, "count": c} for t, c in popular],
            "recent_activity": recent,
        }
