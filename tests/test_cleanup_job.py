from contextlib import asynccontextmanager
from datetime import timedelta

import app.services.storage as storage_module
from app.jobs.cleanup import run_cleanup_cycle
from app.schemas.export import ExportCreate
from app.schemas.share import ShareCreate
from app.services.export import ExportService
from app.services.share import ShareService
from app.utils.clock import utcnow


async def test_cleanup_cycle_is_idempotent(session_maker, db, owner, generation, storage, counter, monkeypatch):
    monkeypatch.setattr(storage_module, "_storage_service", storage)

    @asynccontextmanager
    async def session_factory():
        async with session_maker() as session:
            yield session
            await session.commit()

    now = utcnow()
    exports = ExportService(db, storage=storage)
    expired = await exports.create_export(
        owner, ExportCreate(exportable_id=generation.id, export_type="csv", expires_in_days=1)
    )
    kept = await exports.create_export(
        owner, ExportCreate(exportable_id=generation.id, export_type="csv", expires_in_days=10)
    )
    await ShareService(db, rate_limiter=counter).create_share(
        owner,
        ShareCreate(shareable_id=generation.id, share_type="public", expires_at=now + timedelta(hours=1)),
    )
    await db.commit()

    later = now + timedelta(days=2)
    first = await run_cleanup_cycle(now=later, session_factory=session_factory)
    assert first["expired_exports"] == 1
    assert first["deactivated_shares"] == 1

    second = await run_cleanup_cycle(now=later, session_factory=session_factory)
    assert second["expired_exports"] == 0
    assert second["deactivated_shares"] == 0

    assert not await storage.exists(expired.file_path)
    assert await storage.exists(kept.file_path)
