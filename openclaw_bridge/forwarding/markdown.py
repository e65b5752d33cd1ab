"""Text shaping for Markdown log entries."""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional

ELLIPSIS = "…"
MAX_TAGS = 8
MAX_TAG_CHARS = 24

_MARKDOWN_SPECIALS = ("\\", "[", "]", "(", ")", "`")


def single_line(value: Optional[str], max_chars: int) -> Optional[str]:
    """Collapse whitespace to single spaces and cap the length with an ellipsis."""
    if not value:
        return None
    collapsed = re.sub(r"\s+", " ", value).strip()
    if not collapsed:
        return None
    if len(collapsed) > max_chars:
        return collapsed[:max_chars] + ELLIPSIS
    return collapsed


def clip_block(value: str, max_chars: int) -> str:
    trimmed = value.strip()
    if len(trimmed) > max_chars:
        return trimmed[:max_chars] + ELLIPSIS
    return trimmed


def escape_markdown(value: str) -> str:
    # Backslash first so later escapes are not doubled.
    for char in _MARKDOWN_SPECIALS:
        value = value.replace(char, "\\" + char)
    return value


def slugify_tag(tag: str) -> Optional[str]:
    slug = re.sub(r"\s+", "-", tag.strip().lower())
    slug = re.sub(r"[^a-z0-9_-]", "", slug)[:MAX_TAG_CHARS]
    return slug or None


def tag_slugs(tags: Iterable[str]) -> List[str]:
    slugs = [slug for slug in (slugify_tag(str(tag)) for tag in tags) if slug]
    return slugs[:MAX_TAGS]


def quote_block(text: str) -> str:
    lines = text.splitlines() or [""]
    return "\n".join(">" if not line.strip() else f"> {line}" for line in lines)


def minute_stamp(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m-%d %H:%M") + " UTC"
