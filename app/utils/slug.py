"""
Slug helpers for product URLs
"""

import re
import time
import unicodedata
from typing import Optional

# lowercase alphanumeric tokens separated by single hyphens
SLUG_PATTERN = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')

_NON_ALNUM = re.compile(r'[^a-z0-9]+')


def slugify(value: str) -> str:
    """
    Turn a title into a URL-safe slug.

    "Gold Ring (18K)" -> "gold-ring-18k". Accents are folded to ASCII and
    anything that is not a letter or digit collapses into a single hyphen.
    """
    if not value:
        return ""
    normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    return _NON_ALNUM.sub("-", normalized.lower()).strip("-")


def is_valid_slug(slug: Optional[str]) -> bool:
    return bool(slug) and SLUG_PATTERN.match(slug) is not None


def with_time_suffix(slug: str, timestamp_ms: Optional[int] = None) -> str:
    """Disambiguate a colliding slug with a millisecond timestamp"""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{slug}-{timestamp_ms}"
