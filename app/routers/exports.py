"""
Export endpoints: owner-facing management plus the public download route.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies.auth import get_current_owner
from app.exceptions import NotFoundError
from app.middlewares.rate_limit_middleware import get_rate_limit_decorator, public_route_limit
from app.models.export import Export
from app.models.user import User
from app.schemas.export import (
    CleanupResponse,
    ExportAnalytics,
    ExportCreate,
    ExportListResponse,
    ExportResponse,
    ExportStats,
    ExportTarget,
)
from app.services.export import DownloadPayload, ExportService
from app.utils.clock import utcnow

router = APIRouter(prefix="/exports", tags=["Exports"])
downloads_router = APIRouter(prefix="/downloads", tags=["Exports"])

download_rate_limit = get_rate_limit_decorator(public_route_limit)


def to_export_response(export: Export, request: Request, target=None) -> ExportResponse:
    base = str(request.base_url).rstrip("/")
    return ExportResponse(
        id=export.id,
        uuid=export.uuid,
        export_type=export.export_type,
        file_size=export.file_size,
        formatted_file_size=export.formatted_file_size,
        download_count=export.download_count,
        download_url=f"{base}{export.download_path}",
        public_download_url=f"{base}{export.public_download_path}",
        is_expired=export.is_expired(utcnow()),
        has_been_downloaded=export.download_count > 0,
        expires_at=export.expires_at,
        created_at=export.created_at,
        last_downloaded_at=export.last_downloaded_at,
        exportable=ExportTarget(
            type=export.exportable_type,
            id=target.id,
            business_name=target.business_name,
        ) if target is not None else None,
    )


def download_response(payload: DownloadPayload) -> Response:
    return Response(
        content=payload.content,
        media_type=payload.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{payload.filename}"',
            "Content-Length": str(len(payload.content)),
        },
    )


@router.post(
    "",
    response_model=ExportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an export",
)
async def create_export(
    data: ExportCreate,
    request: Request,
    current_user: User = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> ExportResponse:
    """
    Render a completed logo generation to PDF, CSV or JSON.

    - **expires_in_days**: 1-30, default 7
    - **template**: `default` or `professional` (PDF header style)
    - 422: invalid request or rendering failed; 503: timeout or storage unavailable
    """
    service = ExportService(db)
    export = await service.create_export(current_user, data)
    target = await service.get_export_target(export)
    return to_export_response(export, request, target)


@router.get(
    "",
    response_model=ExportListResponse,
    summary="List my exports",
)
async def list_exports(
    request: Request,
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1, le=100),
    export_type: Optional[str] = Query(None),
    current_user: User = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> ExportListResponse:
    service = ExportService(db)
    result = await service.get_user_exports(current_user, page=page, per_page=per_page, export_type=export_type)
    stats = await service.get_user_export_stats(current_user)
    return ExportListResponse(
        items=[to_export_response(export, request) for export in result.items],
        total=result.total,
        page=result.page,
        per_page=result.per_page,
        last_page=result.last_page,
        has_more_pages=result.has_more_pages,
        stats=ExportStats(**stats),
    )


@router.get(
    "/analytics",
    response_model=ExportAnalytics,
    summary="Export statistics",
)
async def export_analytics(
    current_user: User = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> ExportAnalytics:
    return ExportAnalytics(**await ExportService(db).get_export_analytics(current_user))


@router.delete(
    "/cleanup",
    response_model=CleanupResponse,
    summary="Purge expired exports",
)
async def cleanup_exports(
    current_user: User = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> CleanupResponse:
    deleted = await ExportService(db).cleanup_expired_exports()
    return CleanupResponse(message=f"Cleaned up {deleted} expired exports", deleted_count=deleted)


@router.get(
    "/{export_uuid}",
    response_model=ExportResponse,
    summary="Get one of my exports",
)
async def get_export(
    export_uuid: str,
    request: Request,
    current_user: User = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> ExportResponse:
    service = ExportService(db)
    export = await service.get_export_for_owner(export_uuid, current_user)
    target = await service.get_export_target(export)
    return to_export_response(export, request, target)


@router.delete(
    "/{export_uuid}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an export and its file",
)
async def delete_export(
    export_uuid: str,
    current_user: User = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> Response:
    service = ExportService(db)
    export = await service.get_export_for_owner(export_uuid, current_user)
    await service.delete_export(export, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{export_uuid}/download",
    summary="Download my export",
    responses={404: {"description": "File missing"}, 410: {"description": "Export expired"}},
)
async def download_export(
    export_uuid: str,
    current_user: User = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> Response:
    service = ExportService(db)
    export = await service.get_export_for_owner(export_uuid, current_user)
    return download_response(await service.serve_download(export))


@downloads_router.get(
    "/{export_uuid}",
    summary="Download an export by link",
    responses={404: {"description": "Unknown export or file missing"}, 410: {"description": "Export expired"}},
)
@download_rate_limit
async def public_download(
    export_uuid: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Response:
    """
    Anyone holding the uuid can download until the export expires.
    Limited per client IP like the public share routes.
    """
    service = ExportService(db)
    export = await service.get_by_uuid(export_uuid)
    if export is None:
        raise NotFoundError("Export not found")
    return download_response(await service.serve_download(export))
