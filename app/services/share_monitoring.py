"""
Access monitoring for public shares: bursts from one IP, automated clients
and unusually high traffic. Detection only; nothing is blocked here.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.share import Share, ShareAccess
from app.utils.clock import utcnow
from app.utils.prometheus_metrics import share_bot_access_total, share_suspicious_access_total

logger = logging.getLogger("app.share_security")

SUSPICIOUS_ACCESS_THRESHOLD = 10
SUSPICIOUS_WINDOW = timedelta(minutes=5)
HIGH_VOLUME_THRESHOLD = 100
HIGH_VOLUME_WINDOW = timedelta(hours=1)

BOT_INDICATORS = (
    "bot", "crawler", "spider", "scraper", "curl",
    "wget", "python-requests", "axios", "http", "postman",
)


@dataclass
class AccessFlags:
    suspicious: bool = False
    bot: bool = False
    high_volume: bool = False


def is_bot_user_agent(user_agent: Optional[str]) -> bool:
    if not user_agent:
        return False
    lowered = user_agent.lower()
    return any(indicator in lowered for indicator in BOT_INDICATORS)


class ShareMonitoringService:
    """Runs after each recorded access, inside the same session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _count_accesses(self, share_id: int, since: datetime, ip_address: Optional[str] = None) -> int:
        query = select(func.count(ShareAccess.id)).where(
            ShareAccess.share_id == share_id,
            ShareAccess.accessed_at >= since,
        )
        if ip_address is not None:
            query = query.where(ShareAccess.ip_address == ip_address)
        return (await self.db.execute(query)).scalar_one()

    async def monitor_access(
        self,
        share: Share,
        ip_address: Optional[str],
        user_agent: Optional[str],
        now: Optional[datetime] = None,
    ) -> AccessFlags:
        now = now or utcnow()
        flags = AccessFlags()

        if ip_address:
            recent = await self._count_accesses(share.id, now - SUSPICIOUS_WINDOW, ip_address)
            if recent > SUSPICIOUS_ACCESS_THRESHOLD:
                flags.suspicious = True
                share_suspicious_access_total.inc()
                logger.warning(
                    "Suspicious share access pattern",
                    extra={
                        "event": "share_security",
                        "share_uuid": share.uuid,
                        "client_ip": ip_address,
                        "access_count": recent,
                        "window_minutes": int(SUSPICIOUS_WINDOW.total_seconds() // 60),
                    },
                )

        if is_bot_user_agent(user_agent):
            flags.bot = True
            share_bot_access_total.inc()
            logger.info(
                "Bot access to share",
                extra={"event": "share_security", "share_uuid": share.uuid, "user_agent": (user_agent or "")[:200]},
            )

        hourly = await self._count_accesses(share.id, now - HIGH_VOLUME_WINDOW)
        if hourly > HIGH_VOLUME_THRESHOLD:
            flags.high_volume = True
            logger.warning(
                "High volume share access",
                extra={"event": "share_security", "share_uuid": share.uuid, "hourly_accesses": hourly},
            )

        return flags

    async def get_security_metrics(self, share: Share, now: Optional[datetime] = None) -> dict:
        """Last-24h access summary for the owner dashboard."""
        since = (now or utcnow()) - timedelta(hours=24)
        base = (ShareAccess.share_id == share.id, ShareAccess.accessed_at >= since)

        unique_ips = (await self.db.execute(
            select(func.count(distinct(ShareAccess.ip_address))).where(*base)
        )).scalar_one()
        total = (await self.db.execute(
            select(func.count(ShareAccess.id)).where(*base)
        )).scalar_one()

        access_count = func.count(ShareAccess.id).label("accesses")
        rows = (await self.db.execute(
            select(ShareAccess.ip_address, access_count)
            .where(*base, ShareAccess.ip_address.is_not(None))
            .group_by(ShareAccess.ip_address)
            .order_by(access_count.desc())
            .limit(5)
        )).all()
        top_ips: List[dict] = [{"ip_address": ip, "accesses": count} for ip, count in rows]

        return {"unique_ips_24h": unique_ips, "total_accesses_24h": total, "top_ips": top_ips}
