"""Thin chat-completions wrapper used by the dispatcher."""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import httpx

from ..settings import BridgeSettings
from .flashcards import FLASHCARDS_INSTRUCTIONS
from .types import ActionRequest, ErrorCode, Outcome

MESSAGE_PREAMBLE = "OpenClaw Tools action request:"
QUEUED_RETRY_AFTER_MS = 5000


class ForwardingError(RuntimeError):
    """Base error raised for upstream failures."""


class UpstreamTimeout(ForwardingError):
    """Raised when the upstream call does not finish before the deadline."""


class UpstreamUnavailable(ForwardingError):
    """Raised for transport failures and retryable HTTP statuses (408, 429, 5xx)."""


class UpstreamRejected(ForwardingError):
    """Raised when upstream rejects the request itself (non-retryable 4xx)."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponse(ForwardingError):
    """Raised when a successful response carries no usable text."""


@dataclass
class ChatCompletionResult:
    """Simplified view of a chat completion response."""

    content: Optional[str]
    raw: Mapping[str, Any]
    finish_reason: Optional[str] = None


def build_action_message(request: ActionRequest, request_id: str) -> str:
    """Serialize the request into the single user message sent upstream."""
    context: Dict[str, Any] = {
        "url": request.url,
        "title": request.title,
        "selection": request.selection,
        "userPrompt": request.user_prompt,
    }
    context = {key: value for key, value in context.items() if value is not None}
    context["tags"] = list(request.tags)

    body = {
        "requestId": request_id,
        "action": request.action,
        "source": request.source,
        "context": context,
        "responseMode": request.response_mode or "telegram",
        "timestamp": request.timestamp,
    }
    message = f"{MESSAGE_PREAMBLE}\n{json.dumps(body, separators=(',', ':'), ensure_ascii=False)}"
    if request.action == "flashcards":
        message = f"{message}\n\n{FLASHCARDS_INSTRUCTIONS}"
    return message


def extract_completion_text(data: Any) -> Optional[str]:
    """Return the first choice's text, joining list-of-parts content in order."""
    if not isinstance(data, Mapping):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], Mapping):
        return None
    message = choices[0].get("message")
    if not isinstance(message, Mapping):
        return None

    content = message.get("content")
    if isinstance(content, str):
        text = content
    elif isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, Mapping) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        text = "".join(parts)
    else:
        return None
    return text if text.strip() else None


def is_retryable_status(status_code: int) -> bool:
    return status_code in (408, 429) or status_code >= 500


class CompletionClient:
    """Co-ordinates requests to the OpenClaw chat completions endpoint."""

    _COMPLETIONS_PATH = "/v1/chat/completions"

    def __init__(
        self,
        settings: BridgeSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.settings = settings
        self.timeout = settings.timeout_seconds
        self._logger = logger or logging.getLogger(__name__)
        self._client: Optional[httpx.AsyncClient] = None

        if settings.upstream_configured:
            headers = {
                "Authorization": f"Bearer {settings.token}",
                "x-openclaw-session-key": settings.session_key,
            }
            if settings.agent_id:
                headers["x-openclaw-agent-id"] = settings.agent_id
            self._client = httpx.AsyncClient(
                base_url=settings.base_url.rstrip("/"),
                headers=headers,
                timeout=self.timeout,
                transport=transport,
            )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def __aenter__(self) -> "CompletionClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------
    # Public boundary
    # ------------------------------
    async def complete(
        self,
        request: ActionRequest,
        request_id: str,
        *,
        require_text: bool = False,
    ) -> Outcome:
        """Run one attempt and classify the result; never raises for upstream failures."""
        try:
            result = await self.generate(request, request_id, require_text=require_text)
        except UpstreamTimeout:
            return Outcome.queued(request_id, ErrorCode.UPSTREAM_TIMEOUT, QUEUED_RETRY_AFTER_MS)
        except UpstreamUnavailable as exc:
            self._log_debug("upstream-unavailable", request_id, {"error": str(exc)})
            return Outcome.failed(request_id, ErrorCode.UPSTREAM_UNAVAILABLE)
        except (UpstreamRejected, MalformedResponse) as exc:
            self._log_debug("upstream-rejected", request_id, {"error": str(exc)})
            return Outcome.failed(request_id, ErrorCode.INTERNAL_ERROR)
        return Outcome.sent(request_id, content=result.content)

    async def generate(
        self,
        request: ActionRequest,
        request_id: str,
        *,
        require_text: bool = False,
    ) -> ChatCompletionResult:
        if self._client is None:
            self._logger.warning("upstream not configured; set base_url and token")
            raise UpstreamUnavailable("OpenClaw base URL or token is missing")

        payload = {
            "model": self.settings.model,
            "stream": False,
            "messages": [{"role": "user", "content": build_action_message(request, request_id)}],
        }
        data = await self._post(self._COMPLETIONS_PATH, payload, request_id)
        result = self._parse_chat_completion(data)
        self._log_debug(
            "upstream-completion",
            request_id,
            {"finish_reason": result.finish_reason, "has_text": result.content is not None},
        )
        if require_text and result.content is None:
            raise MalformedResponse("Chat completion response carried no text content")
        return result

    # ------------------------------
    # HTTP helpers
    # ------------------------------
    async def _post(self, path: str, payload: Mapping[str, Any], request_id: str) -> Any:
        assert self._client is not None
        self._log_debug("upstream-request", request_id, {"path": path, "model": payload.get("model")})
        try:
            response = await asyncio.wait_for(self._client.post(path, json=payload), timeout=self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise UpstreamTimeout(f"OpenClaw request timed out after {self.timeout:.3f}s") from exc
        except httpx.HTTPError as exc:  # network issues
            raise UpstreamUnavailable(f"OpenClaw request failed: {exc}") from exc

        self._log_debug("upstream-response", request_id, {"status": response.status_code})
        if response.status_code >= 400:
            message = f"OpenClaw request failed ({response.status_code})"
            if is_retryable_status(response.status_code):
                raise UpstreamUnavailable(message)
            raise UpstreamRejected(message, response.status_code)
        return self._safe_json(response)

    def _safe_json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    def _parse_chat_completion(self, data: Any) -> ChatCompletionResult:
        raw = data if isinstance(data, Mapping) else {}
        finish_reason = None
        choices = raw.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], Mapping):
            reason = choices[0].get("finish_reason")
            finish_reason = reason if isinstance(reason, str) else None
        return ChatCompletionResult(content=extract_completion_text(raw), raw=raw, finish_reason=finish_reason)

    def _log_debug(self, event: str, request_id: str, extra: Mapping[str, object]) -> None:
        if not self.settings.debug:
            return
        payload: Dict[str, object] = {"event": event, "request_id": request_id}
        payload.update(dict(extra))
        self._logger.debug("completion-client", extra={"forward": payload})
