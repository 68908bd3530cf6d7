"""
Database models package.
All models are exported here for easy import.
"""
from app.models.user import User
from app.models.logo_generation import GeneratedLogo, GenerationStatus, LogoGeneration
from app.models.share import Share, ShareAccess
from app.models.export import Export

__all__ = [
    "User",
    "LogoGeneration",
    "GeneratedLogo",
    "GenerationStatus",
    "Share",
    "ShareAccess",
    "Export",
]
