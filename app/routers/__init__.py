"""
API routers package.
"""
from app.routers.auth import router as auth_router
from app.routers.exports import downloads_router, router as exports_router
from app.routers.health import router as health_router
from app.routers.public_share import router as public_share_router
from app.routers.shares import router as shares_router

__all__ = [
    "auth_router",
    "downloads_router",
    "exports_router",
    "health_router",
    "public_share_router",
    "shares_router",
]
