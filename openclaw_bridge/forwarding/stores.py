"""Append-only Markdown logs for bookmarks and flashcards."""
from __future__ import annotations

import asyncio
import logging
import re
import weakref
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from .markdown import clip_block, escape_markdown, minute_stamp, quote_block, single_line, tag_slugs
from .types import ActionRequest, AppendResult
from .urls import extract_bookmarked_urls, log_safe_url, same_resource

MAX_TITLE_CHARS = 180
MAX_NOTE_CHARS = 280
MAX_CARDS_TEXT_CHARS = 12000

_logger = logging.getLogger(__name__)

_PATH_LOCKS: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[Path, asyncio.Lock]]" = (
    weakref.WeakKeyDictionary()
)


def path_lock(path: Path) -> asyncio.Lock:
    """Return the lock serializing writers of ``path`` on the running loop."""
    loop = asyncio.get_running_loop()
    locks = _PATH_LOCKS.setdefault(loop, {})
    lock = locks.get(path)
    if lock is None:
        lock = locks[path] = asyncio.Lock()
    return lock


def _checked_key(key: str) -> str:
    if "\n" in key or "\r" in key:
        raise ValueError("idempotency key must be a single line")
    return key


def _read_existing(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ""


def _append_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(text)


def _separator(existing: str, header: str) -> str:
    if not existing.strip():
        return f"{header}\n\n"
    trailing = len(existing) - len(existing.rstrip("\n"))
    return "\n" * max(0, 2 - trailing)


class AppendOnlyStore:
    """Read-check-append log with idempotency-key deduplication.

    Subclasses render entries and may add their own duplicate rule.
    """

    header = "# LOG"

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser().resolve()

    async def append(
        self,
        request: ActionRequest,
        request_id: str,
        content: Optional[str] = None,
        *,
        title: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AppendResult:
        async with path_lock(self.path):
            await asyncio.to_thread(self.path.parent.mkdir, parents=True, exist_ok=True)
            existing = await asyncio.to_thread(_read_existing, self.path)

            duplicate = self._find_duplicate(request, existing)
            if duplicate:
                _logger.debug(
                    "append-deduped",
                    extra={"store": {"path": str(self.path), "reason": duplicate, "request_id": request_id}},
                )
                return AppendResult.duplicate(duplicate)

            entry = self.render_entry(request, request_id, content, title=title, now=now)
            await asyncio.to_thread(_append_text, self.path, f"{_separator(existing, self.header)}{entry}\n")

        _logger.debug("append-written", extra={"store": {"path": str(self.path), "request_id": request_id}})
        return AppendResult.written()

    def _find_duplicate(self, request: ActionRequest, existing: str) -> Optional[str]:
        if request.idempotency_key and self.has_idempotency_key(existing, request.idempotency_key):
            return "idempotency"
        return None

    @staticmethod
    def has_idempotency_key(existing: str, key: str) -> bool:
        pattern = rf"^[ \t]*- idempotencyKey: {re.escape(_checked_key(key))}$"
        return re.search(pattern, existing, flags=re.MULTILINE) is not None

    def render_entry(
        self,
        request: ActionRequest,
        request_id: str,
        content: Optional[str],
        *,
        title: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> str:
        raise NotImplementedError

    @staticmethod
    def _safe_title(title: Optional[str]) -> str:
        return escape_markdown(single_line(title, MAX_TITLE_CHARS) or "Untitled")


class BookmarkStore(AppendOnlyStore):
    header = "# BOOKMARKS"

    def _find_duplicate(self, request: ActionRequest, existing: str) -> Optional[str]:
        reason = super()._find_duplicate(request, existing)
        if reason or not request.url:
            return reason

        incoming = log_safe_url(request.url)
        if any(same_resource(incoming, recorded) for recorded in extract_bookmarked_urls(existing)):
            return "url"
        return None

    def render_entry(
        self,
        request: ActionRequest,
        request_id: str,
        content: Optional[str],
        *,
        title: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> str:
        timestamp = minute_stamp(now)
        safe_title = self._safe_title(title or request.title)
        url = log_safe_url(request.url) if request.url else ""
        if url:
            lines = [f"- {timestamp} — [{safe_title}](<{url}>)"]
        else:
            lines = [f"- {timestamp} — {safe_title}"]

        lines.append(f"  - source: {request.source}")
        tags = tag_slugs(request.tags)
        if tags:
            lines.append("  - tags: " + " ".join(f"#{tag}" for tag in tags))
        note = single_line(content or request.selection, MAX_NOTE_CHARS)
        if note:
            lines.append(f"  - note: {escape_markdown(note)}")
        if request.idempotency_key:
            lines.append(f"  - idempotencyKey: {_checked_key(request.idempotency_key)}")
        lines.append(f"  - requestId: {request_id}")
        return "\n".join(lines)


class FlashcardStore(AppendOnlyStore):
    header = "# FLASHCARDS"

    def render_entry(
        self,
        request: ActionRequest,
        request_id: str,
        content: Optional[str],
        *,
        title: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> str:
        timestamp = minute_stamp(now)
        lines: List[str] = [f"## {timestamp} — {self._safe_title(title or request.title)}"]
        lines.append(f"- source: {request.source}")
        url = log_safe_url(request.url) if request.url else ""
        if url:
            lines.append(f"- url: <{url}>")
        if request.idempotency_key:
            lines.append(f"- idempotencyKey: {_checked_key(request.idempotency_key)}")
        lines.append(f"- requestId: {request_id}")
        lines.append("")
        lines.append("### Cards")
        lines.append(quote_block(clip_block(content or "", MAX_CARDS_TEXT_CHARS)))
        return "\n".join(lines)
