"""Routing, retry and persistence orchestration for action requests."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Mapping, Optional, Set

from ..settings import BridgeSettings
from .completion_client import CompletionClient
from .flashcards import FlashcardDeck, parse_flashcards
from .notify import NotificationError, NotificationSink
from .stores import BookmarkStore, FlashcardStore
from .types import ActionRequest, ErrorCode, Outcome

SleepFn = Callable[[float], Awaitable[None]]


class ActionDispatcher:
    """Public facade turning one request into exactly one ``Outcome``."""

    def __init__(
        self,
        settings: BridgeSettings,
        *,
        completion_client: Optional[CompletionClient] = None,
        bookmark_store: Optional[BookmarkStore] = None,
        flashcard_store: Optional[FlashcardStore] = None,
        notification_sink: Optional[NotificationSink] = None,
        logger: Optional[logging.Logger] = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self._owns_client = completion_client is None
        self._client = completion_client or CompletionClient(settings)
        self._bookmarks = bookmark_store or BookmarkStore(settings.bookmarks_path)
        self._flashcards = flashcard_store or FlashcardStore(settings.flashcards_path)
        self._sink = notification_sink or NotificationSink.from_settings(settings)
        self._logger = logger or logging.getLogger(__name__)
        self._sleep = sleep
        self._pending: Set[asyncio.Task] = set()

    async def dispatch(self, request: ActionRequest, request_id: str) -> Outcome:
        started = time.perf_counter()
        if request.action == "bookmark":
            outcome = await self._handle_bookmark(request, request_id)
        else:
            outcome = await self._handle_completion(request, request_id)

        self._logger.info(
            "action request handled",
            extra={
                "forward": {
                    "request_id": request_id,
                    "action": request.action,
                    "source": request.source,
                    "status": outcome.status,
                    "error_code": outcome.error_code.value if outcome.error_code else None,
                    "latency_ms": round((time.perf_counter() - started) * 1000),
                }
            },
        )
        return outcome

    async def drain(self) -> None:
        """Wait for detached notifications to settle."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        if self._owns_client:
            await self._client.aclose()

    @property
    def pending_notifications(self) -> int:
        return len(self._pending)

    # ------------------------------
    # Bookmarks
    # ------------------------------
    async def _handle_bookmark(self, request: ActionRequest, request_id: str) -> Outcome:
        try:
            result = await self._bookmarks.append(request, request_id)
        except Exception:
            self._logger.exception("bookmark append failed", extra={"forward": {"request_id": request_id}})
            return Outcome.failed(request_id, ErrorCode.INTERNAL_ERROR)

        label = request.title or request.url or "Untitled"
        if not result.deduped:
            self._notify_later(_with_url(f"Bookmark saved: {label}", request.url), request_id)
        elif result.reason == "url":
            self._notify_later(_with_url(f"Already bookmarked: {label}", request.url), request_id)
        return Outcome.sent(request_id)

    # ------------------------------
    # Completions
    # ------------------------------
    async def _handle_completion(self, request: ActionRequest, request_id: str) -> Outcome:
        is_flashcards = request.action == "flashcards"
        require_text = is_flashcards or self._sink.configured
        outcome = await self._forward_with_retries(request, request_id, require_text=require_text)
        if outcome.status != "sent":
            return outcome

        if is_flashcards:
            return await self._save_flashcards(request, request_id, outcome)

        if self._sink.configured:
            try:
                await self._sink.deliver(outcome.content or "")
            except NotificationError as exc:
                self._logger.warning(
                    "completion delivery failed: %s", exc, extra={"forward": {"request_id": request_id}}
                )
                return Outcome.failed(request_id, ErrorCode.UPSTREAM_UNAVAILABLE)
        return outcome

    async def _forward_with_retries(
        self,
        request: ActionRequest,
        request_id: str,
        *,
        require_text: bool,
    ) -> Outcome:
        max_retries = self.settings.max_retries
        outcome: Optional[Outcome] = None
        for attempt in range(max_retries + 1):
            outcome = await self._client.complete(request, request_id, require_text=require_text)
            self._log_debug(
                "forward-attempt",
                request_id,
                {
                    "attempt": attempt,
                    "status": outcome.status,
                    "error_code": outcome.error_code.value if outcome.error_code else None,
                },
            )
            if outcome.status == "sent":
                return outcome
            if not outcome.retryable or attempt >= max_retries:
                return outcome
            await self._sleep(self.settings.retry_base_seconds * (attempt + 1))

        assert outcome is not None
        return outcome

    async def _save_flashcards(self, request: ActionRequest, request_id: str, outcome: Outcome) -> Outcome:
        deck: FlashcardDeck = parse_flashcards(outcome.content or "", fallback_title=request.title)
        try:
            result = await self._flashcards.append(request, request_id, deck.render(), title=deck.title)
        except Exception:
            self._logger.exception("flashcards append failed", extra={"forward": {"request_id": request_id}})
            return Outcome.failed(request_id, ErrorCode.INTERNAL_ERROR)

        if not result.deduped:
            count = len(deck.cards)
            suffix = f" ({count} card{'' if count == 1 else 's'})" if deck.structured else ""
            self._notify_later(f"Flashcards saved: {deck.title}{suffix}", request_id)
        elif result.reason == "idempotency":
            self._notify_later(f"Flashcards already saved: {deck.title}", request_id)
        return outcome

    # ------------------------------
    # Best-effort notifications
    # ------------------------------
    def _notify_later(self, message: str, request_id: str) -> None:
        if not self._sink.configured:
            return
        task = asyncio.get_running_loop().create_task(self._notify_quietly(message, request_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _notify_quietly(self, message: str, request_id: str) -> None:
        try:
            await self._sink.deliver(message)
        except NotificationError as exc:
            self._logger.warning("notification failed: %s", exc, extra={"forward": {"request_id": request_id}})

    def _log_debug(self, event: str, request_id: str, extra: Mapping[str, object]) -> None:
        if not self.settings.debug:
            return
        payload = {"event": event, "request_id": request_id}
        payload.update(dict(extra))
        self._logger.debug("action-dispatcher", extra={"forward": payload})


def _with_url(message: str, url: Optional[str]) -> str:
    if url and url not in message:
        return f"{message}\n{url}"
    return message
