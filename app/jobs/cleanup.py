"""
Periodic cleanup: expired exports, orphaned artifacts and share retention.

Every step is idempotent, so overlapping or repeated runs are harmless.
"""
import asyncio
import logging
from datetime import datetime
from typing import Dict, Optional

from app.config import get_settings
from app.database import get_db_context
from app.services.export import ExportService
from app.services.share import ShareService
from app.utils.clock import utcnow

logger = logging.getLogger("app.cleanup")


async def run_cleanup_cycle(now: Optional[datetime] = None, session_factory=get_db_context) -> Dict[str, int]:
    """
    Run one full cleanup pass.

    Returns:
        Count per step
    """
    now = now or utcnow()
    summary: Dict[str, int] = {}

    async with session_factory() as db:
        exports = ExportService(db)
        summary["expired_exports"] = await exports.cleanup_expired_exports(now=now)
        summary["orphaned_artifacts"] = await exports.cleanup_orphaned_artifacts(now=now)

    async with session_factory() as db:
        shares = ShareService(db)
        summary["deactivated_shares"] = await shares.deactivate_expired_shares(now=now)
        summary["purged_shares"] = await shares.purge_inactive_shares(now=now)
        summary["purged_accesses"] = await shares.purge_old_accesses(now=now)

    logger.info("Cleanup cycle finished", extra={"event": "cleanup", **summary})
    return summary


async def cleanup_loop() -> None:
    """
    Background loop started from the app lifespan.
    Returns immediately when CLEANUP_INTERVAL_MINUTES is 0.
    """
    settings = get_settings()
    interval = settings.cleanup_interval_minutes
    if interval <= 0:
        return
    logger.info("Cleanup loop enabled: interval=%dm", interval, extra={"event": "lifecycle"})
    while True:
        await asyncio.sleep(interval * 60)
        try:
            await run_cleanup_cycle()
        except Exception:
            # next cycle retries
            logger.exception("Cleanup cycle failed", extra={"event": "cleanup"})
