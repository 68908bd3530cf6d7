"""
Utility functions package.
"""
from app.utils.security import (
    hash_secret,
    verify_secret,
    new_opaque_id,
    create_access_token,
    decode_access_token,
)

__all__ = [
    "hash_secret",
    "verify_secret",
    "new_opaque_id",
    "create_access_token",
    "decode_access_token",
]
