"""
Health check endpoints for load balancers, Kubernetes probes and monitoring.
"""
import asyncio
import logging
import time
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import text

from app.config import get_settings
from app.database import engine
from app.services.export import ARTIFACT_PREFIX
from app.services.storage import get_storage_service
from app.utils.prometheus_metrics import REGISTRY, Gauge, ready

logger = logging.getLogger("app.health")
router = APIRouter(prefix="/health", tags=["Health"])

settings = get_settings()

health_check_status = Gauge(
    "brand_share_api_health_check_status",
    "Health check status (1=healthy, 0=unhealthy)",
    ["check_type"],
    registry=REGISTRY,
)


def _is_ready() -> bool:
    return ready._value.get() != 0


async def _check_db(timeout: float = 1.0) -> None:
    async def _ping():
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))

    await asyncio.wait_for(_ping(), timeout=timeout)


async def _check_storage(timeout: float = 2.0) -> None:
    await asyncio.wait_for(get_storage_service().exists(f"{ARTIFACT_PREFIX}.health"), timeout=timeout)


@router.get("", summary="Health check (fast)")
async def health_check() -> Dict[str, Any]:
    """
    Fast check for load balancers: ready flag and a 1s database ping.
    """
    start_time = time.perf_counter()
    if not _is_ready():
        health_check_status.labels(check_type="fast").set(0)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Application is shutting down")

    try:
        await _check_db()
    except asyncio.TimeoutError as e:
        logger.warning("DB health check timeout", extra={"event": "health"})
        health_check_status.labels(check_type="fast").set(0)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection timeout") from e
    except Exception as e:
        logger.warning("DB health check failed", extra={"event": "health", "error": str(e)})
        health_check_status.labels(check_type="fast").set(0)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection failed") from e

    health_check_status.labels(check_type="fast").set(1)
    return {
        "status": "healthy",
        "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
        "instance": settings.instance_ip or "unknown",
    }


@router.get("/liveness", summary="Liveness probe (Kubernetes)")
async def liveness_probe() -> Dict[str, str]:
    if not _is_ready():
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Application is shutting down")
    return {"status": "alive"}


@router.get("/readiness", summary="Readiness probe (Kubernetes)")
async def readiness_probe() -> Dict[str, str]:
    if not _is_ready():
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Application is not ready")
    try:
        await _check_db()
    except Exception as e:
        logger.warning("Readiness check failed: DB", extra={"event": "health", "error": str(e)})
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database not ready") from e
    return {"status": "ready"}


@router.get("/detailed", summary="Detailed health check (monitoring)")
async def detailed_health_check() -> Dict[str, Any]:
    """
    Database and export storage, each with its own status.
    """
    start_time = time.perf_counter()
    checks: Dict[str, Any] = {"status": "healthy", "checks": {}}

    if not _is_ready():
        checks["status"] = "unhealthy"
        checks["checks"]["ready"] = {"status": "down", "error": "Application is shutting down"}
        health_check_status.labels(check_type="detailed").set(0)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=checks)

    for name, probe in (("database", _check_db), ("export_storage", _check_storage)):
        try:
            await probe()
            checks["checks"][name] = {"status": "up"}
        except asyncio.TimeoutError:
            checks["status"] = "unhealthy"
            checks["checks"][name] = {"status": "down", "error": "Timeout"}
        except Exception as e:
            checks["status"] = "unhealthy"
            checks["checks"][name] = {"status": "down", "error": str(e)[:200]}
            logger.warning(f"{name} health check failed", extra={"event": "health", "error": str(e)})

    checks["duration_ms"] = round((time.perf_counter() - start_time) * 1000, 2)
    checks["instance"] = settings.instance_ip or "unknown"

    if checks["status"] == "unhealthy":
        health_check_status.labels(check_type="detailed").set(0)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=checks)

    health_check_status.labels(check_type="detailed").set(1)
    return checks
