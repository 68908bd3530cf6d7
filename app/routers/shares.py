"""
Owner-facing share management: create, list, update, deactivate, analytics.
"""
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies.auth import get_current_owner
from app.models.share import Share
from app.models.user import User
from app.schemas.share import (
    ShareAnalytics,
    ShareCreate,
    ShareListResponse,
    ShareResponse,
    ShareUpdate,
)
from app.services.share import ShareService
from app.utils.clock import utcnow

router = APIRouter(prefix="/shares", tags=["Shares"])


def base_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


def to_share_response(share: Share, request: Request, analytics: Optional[dict] = None) -> ShareResponse:
    now = utcnow()
    return ShareResponse(
        id=share.id,
        uuid=share.uuid,
        title=share.title,
        description=share.description,
        share_type=share.share_type,
        share_url=f"{base_url(request)}{share.share_path()}",
        is_active=share.is_active,
        view_count=share.view_count,
        expires_at=share.expires_at,
        created_at=share.created_at,
        updated_at=share.updated_at,
        settings=share.share_settings,
        last_viewed_at=share.last_viewed_at,
        is_expired=share.is_expired(now),
        is_accessible=share.is_accessible(now),
        analytics=ShareAnalytics(**analytics) if analytics is not None else None,
    )


@router.post(
    "",
    response_model=ShareResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a share",
)
async def create_share(
    data: ShareCreate,
    request: Request,
    current_user: User = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> ShareResponse:
    """
    Share an owned logo generation.

    - **share_type**: `public` or `password_protected` (password required)
    - **expires_at**: optional, in the future and at most one year out

    Limited to 10 attempts per hour per owner (429 with Retry-After).
    """
    share = await ShareService(db).create_share(current_user, data)
    return to_share_response(share, request)


@router.get(
    "",
    response_model=ShareListResponse,
    summary="List my shares",
)
async def list_shares(
    request: Request,
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1, le=100),
    share_type: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=255),
    is_active: Optional[bool] = Query(None),
    current_user: User = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> ShareListResponse:
    result = await ShareService(db).get_user_shares(
        current_user,
        page=page,
        per_page=per_page,
        share_type=share_type,
        search=search,
        is_active=is_active,
    )
    return ShareListResponse(
        items=[to_share_response(share, request) for share in result.items],
        total=result.total,
        page=result.page,
        per_page=result.per_page,
        last_page=result.last_page,
        has_more_pages=result.has_more_pages,
    )


@router.get(
    "/{share_id}",
    response_model=ShareResponse,
    summary="Get one of my shares",
)
async def get_share(
    share_id: int,
    request: Request,
    current_user: User = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> ShareResponse:
    share = await ShareService(db).get_owned_share(share_id, current_user)
    return to_share_response(share, request)


@router.put(
    "/{share_id}",
    response_model=ShareResponse,
    summary="Update title, description, settings or expiry",
)
async def update_share(
    share_id: int,
    data: ShareUpdate,
    request: Request,
    current_user: User = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> ShareResponse:
    service = ShareService(db)
    share = await service.get_owned_share(share_id, current_user)
    share = await service.update_share(share, current_user, data)
    return to_share_response(share, request)


@router.delete(
    "/{share_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Deactivate a share",
)
async def deactivate_share(
    share_id: int,
    current_user: User = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """The share stops resolving publicly; its access history is kept."""
    service = ShareService(db)
    share = await service.get_owned_share(share_id, current_user)
    await service.deactivate_share(share, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{share_id}/analytics",
    response_model=ShareResponse,
    summary="Share with view analytics",
)
async def get_share_analytics(
    share_id: int,
    request: Request,
    current_user: User = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> ShareResponse:
    service = ShareService(db)
    share = await service.get_owned_share(share_id, current_user)
    analytics = await service.get_share_analytics(share)
    return to_share_response(share, request, analytics=analytics)


@router.get(
    "/{share_id}/metadata",
    response_model=Dict[str, str],
    summary="Open Graph / Twitter card metadata",
)
async def get_share_metadata(
    share_id: int,
    request: Request,
    current_user: User = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, str]:
    service = ShareService(db)
    share = await service.get_owned_share(share_id, current_user)
    return service.generate_social_media_metadata(share, base_url(request))
