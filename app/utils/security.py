"""
Security helpers: opaque ids, secret hashing and JWT tokens.
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.config import get_settings
from app.schemas.user import TokenPayload

settings = get_settings()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SHARE_SESSION_SCOPE = "share_session"


def new_opaque_id() -> str:
    """
    Generate an external identifier for shares and exports.

    UUID4 is random, so it leaks neither creation order nor the numeric id.
    """
    return str(uuid.uuid4())


def hash_secret(plaintext: str) -> str:
    """
    Hash a secret using bcrypt.

    Args:
        plaintext: Secret to hash

    Returns:
        Salted bcrypt hash
    """
    return pwd_context.hash(plaintext)


def verify_secret(plaintext: Optional[str], hashed: Optional[str]) -> bool:
    """
    Verify a secret against a stored hash.

    Malformed, empty or unknown hashes verify as False instead of raising.

    Args:
        plaintext: Candidate secret
        hashed: Stored hash

    Returns:
        True if the secret matches
    """
    if plaintext is None or not hashed:
        return False
    try:
        return pwd_context.verify(plaintext, hashed)
    except (ValueError, TypeError):
        return False


# Owner account passwords use the same context
hash_password = hash_secret
verify_password = verify_secret


def create_access_token(
    user_id: int,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        user_id: User ID to encode in the token
        expires_delta: Optional expiration time delta

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)

    to_encode = {
        "sub": str(user_id),  # JWT subject must be a string
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> Optional[TokenPayload]:
    """
    Decode and validate a JWT access token.

    Returns:
        TokenPayload if valid, None if invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None

    user_id = payload.get("sub")
    exp = payload.get("exp")
    if user_id is None or payload.get("scope") is not None:
        return None
    try:
        return TokenPayload(
            sub=int(user_id),
            exp=datetime.fromtimestamp(exp, tz=timezone.utc),
        )
    except (TypeError, ValueError):
        return None


def create_share_session_token(share_uuids: List[str]) -> str:
    """
    Signed cookie value listing shares unlocked by password in this browser session.
    """
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.share_session_ttl_minutes)
    return jwt.encode(
        {"shares": sorted(set(share_uuids)), "exp": expire, "scope": SHARE_SESSION_SCOPE},
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_share_session_token(token: Optional[str]) -> List[str]:
    """Share uuids unlocked in the session; empty on a missing, expired or tampered cookie."""
    if not token:
        return []
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return []
    if payload.get("scope") != SHARE_SESSION_SCOPE:
        return []
    shares = payload.get("shares") or []
    return [s for s in shares if isinstance(s, str)]
