"""
Public share pages: no authentication, addressed by uuid only.

Both routes answer JSON or HTML depending on the Accept header.
"""
import html
import time
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.exceptions import InvalidPasswordError, NotFoundError, ValidationError
from app.middlewares.rate_limit_middleware import (
    get_client_identifier,
    get_rate_limit_decorator,
    public_route_limit,
)
from app.models.logo_generation import LogoGeneration
from app.models.share import Share
from app.schemas.share import PublicShareResponse, SharedLogo, SharedTarget
from app.services.share import (
    ACCESS_EXPIRED,
    ACCESS_INVALID_PASSWORD,
    ACCESS_NOT_FOUND,
    ACCESS_OK,
    ACCESS_PASSWORD_REQUIRED,
    ShareService,
)
from app.services.share_session import CookieShareSessionStore, get_share_session_store, share_session_key
from app.utils.client_ip import get_client_ip
from app.utils.prometheus_metrics import (
    rate_limit_requests_total,
    share_access_duration_seconds,
    share_access_total,
    share_brute_force_attempts,
)

router = APIRouter(prefix="/share", tags=["Public Shares"])

share_rate_limit = get_rate_limit_decorator(public_route_limit)

NOT_FOUND_MESSAGE = "Share not found or has expired"


def wants_html(request: Request) -> bool:
    accept = request.headers.get("accept", "")
    return "text/html" in accept and "application/json" not in accept


def build_public_view(share: Share, target: Optional[LogoGeneration]) -> PublicShareResponse:
    """Visible fields only: no numeric id, owner or password data."""
    share_settings = share.share_settings
    shareable = None
    logos: Optional[List[SharedLogo]] = None
    if target is not None:
        shareable = SharedTarget(
            type=share.shareable_type,
            id=target.id,
            business_name=target.business_name,
            business_description=target.business_description,
            status=target.status,
            domain_available=target.domain_available if share_settings.shows("show_domain_status") else None,
            created_at=target.created_at,
        )
        if share_settings.shows("show_logos"):
            logos = [SharedLogo.model_validate(logo) for logo in target.generated_logos]
    return PublicShareResponse(
        uuid=share.uuid,
        title=share.title if share_settings.shows("show_title") else None,
        description=share.description if share_settings.shows("show_description") else None,
        share_type=share.share_type,
        view_count=share.view_count,
        created_at=share.created_at,
        settings=share_settings,
        shareable=shareable,
        logos=logos,
    )


# ============== HTML ==============

def _escape_once(value: str) -> str:
    # stored titles/descriptions are already escaped; plain values are not
    return html.escape(html.unescape(value))


def _page(title: str, body: str, status_code: int = 200, meta: Optional[dict] = None) -> HTMLResponse:
    meta_tags = "".join(
        f'<meta property="{html.escape(name)}" content="{_escape_once(value)}">'
        for name, value in (meta or {}).items()
    )
    content = f"""
    <html>
      <head><title>{_escape_once(title)}</title>{meta_tags}</head>
      <body style="font-family: sans-serif; padding: 24px;">
        {body}
      </body>
    </html>
    """
    return HTMLResponse(content=content, status_code=status_code)


def _not_found_page() -> HTMLResponse:
    return _page("Share not found", f"<h2>{NOT_FOUND_MESSAGE}</h2>", status_code=status.HTTP_404_NOT_FOUND)


def _password_form(share: Share, error: Optional[str] = None, status_code: int = 200) -> HTMLResponse:
    # title/description are stored HTML-escaped already
    title = share.title or "Protected share"
    error_html = f'<p style="color: #b91c1c;">{html.escape(error)}</p>' if error else ""
    body = f"""
        <h2>{title}</h2>
        <p>This share is password protected.</p>
        {error_html}
        <form method="post" action="{share.share_path()}/authenticate">
          <input type="password" name="password" required autofocus>
          <button type="submit">View</button>
        </form>
    """
    return _page("Password required", body, status_code=status_code)


def _share_page(view: PublicShareResponse, meta: dict) -> HTMLResponse:
    parts = []
    if view.title:
        parts.append(f"<h1>{view.title}</h1>")
    if view.description:
        parts.append(f"<p>{view.description}</p>")
    if view.shareable is not None:
        parts.append(f"<h2>{html.escape(view.shareable.business_name or '')}</h2>")
        if view.shareable.business_description:
            parts.append(f"<p>{html.escape(view.shareable.business_description)}</p>")
        if view.shareable.domain_available is not None:
            parts.append(f"<p>Domain available: {'Yes' if view.shareable.domain_available else 'No'}</p>")
    if view.logos:
        items = "".join(
            f"<li>{html.escape(logo.style)} #{logo.variation_number} ({logo.image_width}x{logo.image_height})</li>"
            for logo in view.logos
        )
        parts.append(f"<ul>{items}</ul>")
    parts.append(f"<p><small>{view.view_count} views</small></p>")
    return _page(meta["og:title"], "\n".join(parts), meta=meta)


# ============== Routes ==============

@router.get(
    "/{share_uuid}",
    response_model=PublicShareResponse,
    summary="View a shared item",
    responses={423: {"description": "Password required"}},
)
@share_rate_limit
async def show_share(
    share_uuid: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    session_store: CookieShareSessionStore = Depends(get_share_session_store),
):
    """
    Public view of a share. Records the access on success.

    - 404: unknown, deactivated or expired
    - 423: password required (JSON); the password form (HTML)
    """
    start_time = time.perf_counter()
    rate_limit_requests_total.labels(endpoint="/share/{uuid}", status="allowed").inc()
    service = ShareService(db, session_store=session_store)
    result = await service.validate_share_access(share_uuid)

    def observe(outcome: str) -> None:
        share_access_total.labels(status=outcome).inc()
        share_access_duration_seconds.labels(status=outcome).observe(time.perf_counter() - start_time)

    if result.status in (ACCESS_NOT_FOUND, ACCESS_EXPIRED):
        observe(result.status)
        if result.status == ACCESS_NOT_FOUND:
            share_brute_force_attempts.labels(client_id=get_client_identifier(request)[:16]).inc()
        if wants_html(request):
            return _not_found_page()
        raise NotFoundError(NOT_FOUND_MESSAGE)

    if result.status == ACCESS_PASSWORD_REQUIRED:
        observe(result.status)
        if wants_html(request):
            return _password_form(result.share)
        return JSONResponse(
            status_code=status.HTTP_423_LOCKED,
            content={"message": "Password required", "requires_password": True},
        )

    share = result.share
    await service.record_share_access(
        share,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        referrer=request.headers.get("referer"),
    )
    target = await service.get_shared_target(share)
    view = build_public_view(share, target)
    observe(ACCESS_OK)

    if wants_html(request):
        return _share_page(view, service.generate_social_media_metadata(share, str(request.base_url)))
    return view


async def _read_password(request: Request) -> Optional[str]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError:
            return None
        value = payload.get("password") if isinstance(payload, dict) else None
    else:
        form = await request.form()
        value = form.get("password")
    return value if isinstance(value, str) and value else None


@router.post(
    "/{share_uuid}/authenticate",
    status_code=status.HTTP_303_SEE_OTHER,
    summary="Unlock a password-protected share",
)
@share_rate_limit
async def authenticate_share(
    share_uuid: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    session_store: CookieShareSessionStore = Depends(get_share_session_store),
) -> Response:
    """
    Accepts a form or JSON body with `password`. On success the share is
    unlocked for this browser session and the client is redirected to it.
    """
    password = await _read_password(request)
    # check the password itself, not an earlier unlock
    service = ShareService(db)

    if password is None:
        share = await service.get_share_by_uuid(share_uuid)
        if share is None or not share.is_accessible():
            if wants_html(request):
                return _not_found_page()
            raise NotFoundError(NOT_FOUND_MESSAGE)
        if wants_html(request):
            return _password_form(share, "The password field is required.", status.HTTP_422_UNPROCESSABLE_ENTITY)
        raise ValidationError({"password": ["The password field is required."]})

    result = await service.validate_share_access(share_uuid, password=password)

    if result.status in (ACCESS_NOT_FOUND, ACCESS_EXPIRED):
        if wants_html(request):
            return _not_found_page()
        raise NotFoundError(NOT_FOUND_MESSAGE)

    if result.status == ACCESS_INVALID_PASSWORD:
        share_access_total.labels(status=ACCESS_INVALID_PASSWORD).inc()
        share_brute_force_attempts.labels(client_id=get_client_identifier(request)[:16]).inc()
        if wants_html(request):
            return _password_form(result.share, "Invalid password", status.HTTP_422_UNPROCESSABLE_ENTITY)
        raise InvalidPasswordError()

    share = result.share
    if share.requires_password:
        session_store.set(share_session_key(share.uuid), True)
    response = RedirectResponse(url=share.share_path(), status_code=status.HTTP_303_SEE_OTHER)
    session_store.apply(response)
    return response
