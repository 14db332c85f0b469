"""
Text utilities for spreadsheet cells and URLs.

Used by the reader, the row validator and the media pipeline.
"""

import re
from typing import Any, Optional
from urllib.parse import urlsplit

# ASCII / Latin-1 control characters
_CONTROL_CHARS = re.compile(r"[\u0000-\u001F\u007F-\u009F]")
# Unicode line and paragraph separators
_LINE_SEPARATORS = re.compile(r"[\u2028\u2029]")

# Leading URL, as accepted for URL-shaped fields
LEADING_URL_PATTERN = re.compile(r"^(https?://[^\s()<>\"']+)", re.IGNORECASE)
# Any URL inside free text; never ends on sentence punctuation
EMBEDDED_URL_PATTERN = re.compile(r"(https?://[^\s()<>\"']*[^\s()<>\"'.,;:])", re.IGNORECASE)
# Stricter variant for image extraction: also stops at list separators
IMAGE_URL_PATTERN = re.compile(r"(https?://[^\s|,;()<>\"']+)", re.IGNORECASE)

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def sanitize_cell_value(value: Any) -> str:
    """
    Clean a raw cell for storage.

    - None -> ""
    - Control characters and U+2028/U+2029 removed
    - Leading/trailing whitespace trimmed

    Args:
        value: Raw cell (any type)

    Returns:
        Cleaned string, possibly empty
    """
    if value is None:
        return ""

    text = str(value)
    text = _CONTROL_CHARS.sub("", text)
    text = _LINE_SEPARATORS.sub("", text)
    return text.strip()


def is_blank(value: Optional[str]) -> bool:
    """True for None, empty or whitespace-only strings."""
    return value is None or str(value).strip() == ""


def is_uuid(value: Optional[str]) -> bool:
    """True if value is a canonical 8-4-4-4-12 hex UUID."""
    return bool(value) and bool(UUID_PATTERN.match(value.strip()))


def first_embedded_url(text: Optional[str]) -> Optional[str]:
    """First http(s) URL found anywhere in text, or None."""
    if not text:
        return None
    match = EMBEDDED_URL_PATTERN.search(text)
    return match.group(1) if match else None


def url_basename(url: str) -> str:
    """
    Last path segment of a URL without query string.

    "https://x.com/a/b/drill.jpg?w=300" -> "drill.jpg"
    """
    path = urlsplit(url).path.rstrip("/")
    segment = path.rsplit("/", 1)[-1]
    return re.sub(r"[^A-Za-z0-9._-]", "_", segment)
