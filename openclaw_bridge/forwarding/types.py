"""Dataclasses shared across the forwarding pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

ALLOWED_ACTIONS = ("summarize", "explain", "flashcards", "bookmark", "prompt")
ALLOWED_SOURCES = ("chrome", "macos")
RESPONSE_MODES = ("telegram", "silent", "both")


class ErrorCode(str, Enum):
    UNAUTHORIZED_CLIENT = "UNAUTHORIZED_CLIENT"
    STALE_TIMESTAMP = "STALE_TIMESTAMP"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    UNSUPPORTED_ACTION = "UNSUPPORTED_ACTION"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


RETRYABLE_CODES = frozenset({ErrorCode.UPSTREAM_UNAVAILABLE, ErrorCode.UPSTREAM_TIMEOUT})


@dataclass(frozen=True)
class ActionRequest:
    """Immutable action payload handed over by the front door."""

    action: str
    source: str
    timestamp: str
    version: str = "1"
    url: Optional[str] = None
    title: Optional[str] = None
    selection: Optional[str] = None
    user_prompt: Optional[str] = None
    tags: Tuple[str, ...] = ()
    response_mode: Optional[str] = None
    idempotency_key: Optional[str] = None


@dataclass(frozen=True)
class Outcome:
    """Single result of processing one request."""

    status: str
    request_id: str
    error_code: Optional[ErrorCode] = None
    retry_after_ms: Optional[int] = None
    content: Optional[str] = field(default=None, compare=False, repr=False)

    @classmethod
    def sent(cls, request_id: str, content: Optional[str] = None) -> "Outcome":
        return cls(status="sent", request_id=request_id, content=content)

    @classmethod
    def queued(cls, request_id: str, error_code: ErrorCode, retry_after_ms: int) -> "Outcome":
        return cls(status="queued", request_id=request_id, error_code=error_code, retry_after_ms=retry_after_ms)

    @classmethod
    def failed(cls, request_id: str, error_code: ErrorCode) -> "Outcome":
        return cls(status="failed", request_id=request_id, error_code=error_code)

    @property
    def retryable(self) -> bool:
        return self.status != "sent" and self.error_code in RETRYABLE_CODES

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"status": self.status, "requestId": self.request_id}
        if self.error_code is not None:
            data["errorCode"] = self.error_code.value
        if self.retry_after_ms is not None:
            data["retryAfterMs"] = self.retry_after_ms
        return data


@dataclass(frozen=True)
class AppendResult:
    """Result of an append-only store write."""

    deduped: bool
    reason: Optional[str] = None

    @classmethod
    def written(cls) -> "AppendResult":
        return cls(deduped=False)

    @classmethod
    def duplicate(cls, reason: str) -> "AppendResult":
        return cls(deduped=True, reason=reason)
