"""
Free-text sanitization for share titles and descriptions.
"""
import html
import re
from typing import Optional

_TAG_RE = re.compile(r"<[^>]*>")
# Letters, digits, whitespace and light punctuation
TITLE_PATTERN = re.compile(r"^[\w\s\-.,!?()]+$", re.UNICODE)


def strip_tags(value: str) -> str:
    return _TAG_RE.sub("", value)


def clean_text(value: Optional[str]) -> Optional[str]:
    """Strip tags and trim. Empty results become None."""
    if value is None:
        return None
    cleaned = strip_tags(value).strip()
    return cleaned or None


def escape_text(value: Optional[str]) -> Optional[str]:
    """HTML-escape, quotes included."""
    if value is None:
        return None
    return html.escape(value, quote=True)
