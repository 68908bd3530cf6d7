"""
Services package.
Contains business logic and external service integrations.
"""
from app.services.auth import AuthService
from app.services.export import ExportService
from app.services.export_renderer import ExportRenderer
from app.services.share import ShareService
from app.services.storage import ArtifactStorage, LocalArtifactStorage, S3ArtifactStorage

__all__ = [
    "AuthService",
    "ExportService",
    "ExportRenderer",
    "ShareService",
    "ArtifactStorage",
    "LocalArtifactStorage",
    "S3ArtifactStorage",
]
