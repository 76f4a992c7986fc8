import re
from typing import Optional

import bleach

_WHITESPACE = re.compile(r"\s+")
_SLUG_STRIP = re.compile(r"[^a-z0-9\s-]")
_SLUG_DASHES = re.compile(r"[\s_-]+")


def clean_text(value: Optional[str]) -> Optional[str]:
    """Strip markup from user supplied free text."""
    if value is None:
        return None
    cleaned = bleach.clean(value, tags=[], attributes={}, strip=True)
    return cleaned.replace("&amp;", "&").strip()


def clean_line(value: Optional[str]) -> Optional[str]:
    """Like clean_text but also collapses whitespace, for names and address fields."""
    cleaned = clean_text(value)
    if cleaned is None:
        return None
    return _WHITESPACE.sub(" ", cleaned)


def slugify(value: str) -> str:
    value = value.lower().strip()
    value = _SLUG_STRIP.sub("", value)
    value = _SLUG_DASHES.sub("-", value)
    return value.strip("-")


def category_slug(value: Optional[str]) -> str:
    """Normalise a category column value the way imports match it: lower-case, whitespace to dashes."""
    return _WHITESPACE.sub("-", (value or "").strip().lower())
