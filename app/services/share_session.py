"""
Session-scoped "authenticated for this share" flags.

The share service only reads these flags; the public share router sets
them after a successful password check. Keys are `share_authenticated_{uuid}`.
"""
from typing import Dict, Optional, Protocol, Set

from fastapi import Request, Response

from app.config import get_settings
from app.utils.security import create_share_session_token, decode_share_session_token

KEY_PREFIX = "share_authenticated_"


def share_session_key(share_uuid: str) -> str:
    return f"{KEY_PREFIX}{share_uuid}"


class ShareSessionStore(Protocol):
    def get(self, key: str) -> bool: ...

    def set(self, key: str, value: bool) -> None: ...


class InMemoryShareSessionStore:
    """Dictionary-backed store, one instance per simulated session."""

    def __init__(self, initial: Optional[Dict[str, bool]] = None):
        self._flags: Dict[str, bool] = dict(initial or {})

    def get(self, key: str) -> bool:
        return self._flags.get(key, False)

    def set(self, key: str, value: bool) -> None:
        self._flags[key] = value


class CookieShareSessionStore:
    """
    Flags kept in a signed, expiring JWT cookie.

    Reads come from the request cookie; `set` marks the store dirty and
    `apply(response)` writes the updated cookie back.
    """

    def __init__(self, request: Request):
        self.settings = get_settings()
        cookie = request.cookies.get(self.settings.share_session_cookie_name)
        self._uuids: Set[str] = set(decode_share_session_token(cookie))
        self._dirty = False

    def get(self, key: str) -> bool:
        if not key.startswith(KEY_PREFIX):
            return False
        return key[len(KEY_PREFIX):] in self._uuids

    def set(self, key: str, value: bool) -> None:
        if not key.startswith(KEY_PREFIX):
            raise KeyError(key)
        share_uuid = key[len(KEY_PREFIX):]
        if value:
            self._uuids.add(share_uuid)
        else:
            self._uuids.discard(share_uuid)
        self._dirty = True

    def apply(self, response: Response) -> None:
        if not self._dirty:
            return
        response.set_cookie(
            key=self.settings.share_session_cookie_name,
            value=create_share_session_token(sorted(self._uuids)),
            max_age=self.settings.share_session_ttl_minutes * 60,
            httponly=True,
            samesite="lax",
            secure=self.settings.is_production,
        )


def get_share_session_store(request: Request) -> CookieShareSessionStore:
    """FastAPI dependency."""
    return CookieShareSessionStore(request)
