import asyncio
import json
import logging
import time
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from app.exceptions import (
    AuthorizationError,
    ExportGenerationError,
    GoneError,
    NotFoundError,
    ValidationError,
)
from app.models.export import Export
from app.schemas.export import ExportCreate
from app.services.export import ExportService
from app.services.export_renderer import ExportRenderer
from app.services.storage import StorageError
from app.utils.clock import utcnow


def export_request(generation, **overrides):
    data = {"exportable_id": generation.id, "export_type": "pdf"}
    data.update(overrides)
    return ExportCreate(**data)


class SlowRenderer(ExportRenderer):
    def render(self, *args, **kwargs):
        time.sleep(0.5)
        return super().render(*args, **kwargs)


class FlakyStorage:
    """Fails every put, delegates everything else."""

    def __init__(self, inner):
        self.inner = inner
        self.put_calls = 0

    async def put(self, key, content, content_type):
        self.put_calls += 1
        raise StorageError("bucket unavailable")

    def __getattr__(self, name):
        return getattr(self.inner, name)


class UndeletableStorage:
    """Writes succeed, deletes fail."""

    def __init__(self, inner):
        self.inner = inner
        self.delete_calls = 0

    async def delete(self, key):
        self.delete_calls += 1
        raise StorageError("delete refused")

    def __getattr__(self, name):
        return getattr(self.inner, name)


async def test_pdf_export_expires_in_seven_days(db, owner, generation, storage):
    service = ExportService(db, storage=storage)
    before = utcnow()
    export = await service.create_export(owner, export_request(generation, expires_in_days=7))

    assert before + timedelta(days=6) <= export.expires_at <= utcnow() + timedelta(days=7)
    assert not export.is_expired()
    assert export.download_count == 0
    assert export.file_size > 0
    assert export.download_filename == "techflow-solutions.pdf"
    assert await storage.size(export.file_path) == export.file_size


async def test_csv_export_never_includes_logos(db, owner, generation, storage):
    service = ExportService(db, storage=storage)
    export = await service.create_export(owner, export_request(generation, export_type="csv", include_logos=True))

    assert export.export_settings.include_logos is False
    content = await storage.get(export.file_path)
    assert b"minimalist" not in content
    assert len(content.decode("utf-8").splitlines()) == 2


async def test_export_validation(db, owner, other_user, generation, pending_generation, storage):
    service = ExportService(db, storage=storage)
    cases = [
        (owner, export_request(generation, export_type="xml"), "export_type"),
        (owner, export_request(generation, expires_in_days=0), "expires_in_days"),
        (owner, export_request(generation, expires_in_days=31), "expires_in_days"),
        (owner, export_request(generation, template="fancy"), "template"),
        (owner, export_request(pending_generation), "exportable_id"),
        (other_user, export_request(generation), "exportable_id"),
        (owner, export_request(generation, exportable_type="album"), "exportable_type"),
    ]
    for user, request, field in cases:
        with pytest.raises(ValidationError) as exc:
            await service.create_export(user, request)
        assert field in exc.value.errors

    assert await storage.list("exports/") == []


async def test_render_timeout_is_transient(db, owner, generation, storage, monkeypatch):
    from app.services import export as export_module

    monkeypatch.setattr(export_module.settings, "export_render_timeout_seconds", 0.05)
    service = ExportService(db, storage=storage, renderer=SlowRenderer())

    with pytest.raises(ExportGenerationError) as exc:
        await service.create_export(owner, export_request(generation))
    assert exc.value.transient
    assert exc.value.status_code == 503
    assert isinstance(exc.value.cause, asyncio.TimeoutError)
    assert (await db.execute(select(func.count(Export.id)))).scalar_one() == 0


async def test_storage_failure_leaves_nothing_behind(db, owner, generation, storage):
    flaky = FlakyStorage(storage)
    service = ExportService(db, storage=flaky)

    with pytest.raises(ExportGenerationError) as exc:
        await service.create_export(owner, export_request(generation, export_type="json"))
    assert exc.value.transient
    assert flaky.put_calls == 3
    assert (await db.execute(select(func.count(Export.id)))).scalar_one() == 0


async def test_download_counts_and_returns_bytes(db, owner, generation, storage):
    service = ExportService(db, storage=storage)
    export = await service.create_export(owner, export_request(generation, export_type="json"))

    payload = await service.serve_download(export)
    assert payload.content_type == "application/json"
    assert payload.filename == "techflow-solutions.json"
    assert json.loads(payload.content)["logo_generation"]["id"] == generation.id
    assert export.download_count == 1
    assert export.last_downloaded_at is not None

    await service.serve_download(export)
    assert export.download_count == 2


async def test_expired_download_is_gone_without_counting(db, owner, generation, storage):
    service = ExportService(db, storage=storage)
    export = await service.create_export(owner, export_request(generation, expires_in_days=1))

    with pytest.raises(GoneError):
        await service.serve_download(export, now=utcnow() + timedelta(days=2))
    await db.refresh(export)
    assert export.download_count == 0


async def test_missing_artifact_is_not_found_without_counting(db, owner, generation, storage):
    service = ExportService(db, storage=storage)
    export = await service.create_export(owner, export_request(generation, export_type="csv"))
    await storage.delete(export.file_path)

    with pytest.raises(NotFoundError):
        await service.serve_download(export)
    await db.refresh(export)
    assert export.download_count == 0


async def test_delete_export_removes_record_and_file(db, owner, other_user, generation, storage):
    service = ExportService(db, storage=storage)
    export = await service.create_export(owner, export_request(generation, export_type="csv"))
    key = export.file_path

    with pytest.raises(AuthorizationError):
        await service.delete_export(export, other_user)

    await service.delete_export(export, owner)
    assert not await storage.exists(key)
    assert await service.get_by_uuid(export.uuid) is None


async def test_cleanup_removes_only_expired_and_is_idempotent(db, owner, generation, storage):
    service = ExportService(db, storage=storage)
    short = await service.create_export(owner, export_request(generation, export_type="csv", expires_in_days=1))
    long = await service.create_export(owner, export_request(generation, export_type="json", expires_in_days=30))
    await db.commit()

    later = utcnow() + timedelta(days=2)
    assert await service.cleanup_expired_exports(now=later) == 1
    assert await service.cleanup_expired_exports(now=later) == 0

    assert not await storage.exists(short.file_path)
    assert await storage.exists(long.file_path)
    assert await service.get_by_uuid(long.uuid) is not None


async def test_orphaned_artifacts_are_reconciled(db, owner, generation, storage):
    service = ExportService(db, storage=storage)
    export = await service.create_export(owner, export_request(generation, export_type="csv"))
    await db.commit()
    await storage.put("exports/orphan.csv", b"stale", "text/csv")

    assert await service.cleanup_orphaned_artifacts(now=utcnow()) == 0
    removed = await service.cleanup_orphaned_artifacts(now=utcnow() + timedelta(hours=25))
    assert removed == 1
    assert not await storage.exists("exports/orphan.csv")
    assert await storage.exists(export.file_path)


async def test_listing_stats_and_analytics(db, owner, generation, storage):
    service = ExportService(db, storage=storage)
    for export_type in ("pdf", "csv", "csv"):
        await service.create_export(owner, export_request(generation, export_type=export_type))
    first = (await service.get_user_exports(owner, per_page=1)).items[0]
    await service.serve_download(first)

    page = await service.get_user_exports(owner, page=1, per_page=2)
    assert page.total == 3
    assert page.last_page == 2

    csv_only = await service.get_user_exports(owner, export_type="csv")
    assert csv_only.total == 2

    stats = await service.get_user_export_stats(owner)
    assert stats["total"] == 3
    assert stats["by_type"] == {"pdf": 1, "csv": 2}
    assert stats["total_downloads"] == 1
    assert stats["total_size"] > 0

    analytics = await service.get_export_analytics(owner)
    assert analytics["total_exports"] == 3
    assert analytics["total_downloads"] == 1
    assert analytics["popular_formats"][0] == {"export_type": "csv", "count": 2}
    assert analytics["recent_activity"] == 3


async def test_insert_failure_is_not_masked_by_cleanup_failure(db, owner, generation, storage, monkeypatch):
    undeletable = UndeletableStorage(storage)
    service = ExportService(db, storage=undeletable)

    async def failing_flush(*args, **kwargs):
        raise RuntimeError("insert failed")

    monkeypatch.setattr(db, "flush", failing_flush)
    with pytest.raises(RuntimeError, match="insert failed"):
        await service.create_export(owner, export_request(generation, export_type="csv"))
    assert undeletable.delete_calls == 1


async def test_cleanup_keeps_going_when_artifact_delete_fails(db, owner, generation, storage, caplog):
    export = await ExportService(db, storage=storage).create_export(
        owner, export_request(generation, export_type="csv", expires_in_days=1)
    )
    await db.commit()
    undeletable = UndeletableStorage(storage)

    with caplog.at_level(logging.WARNING, logger="app"):
        removed = await ExportService(db, storage=undeletable).cleanup_expired_exports(
            now=utcnow() + timedelta(days=2)
        )

    assert removed == 1
    assert undeletable.delete_calls == 1
    assert await storage.exists(export.file_path)
    record = next(r for r in caplog.records if r.getMessage() == "Expired export artifact not removed")
    assert record.levelno == logging.WARNING
    assert record.exc_info is not None
    assert record.export_id == export.id
