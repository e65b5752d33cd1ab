"""Canonicalize and validate inbound action payloads."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Tuple

from .types import ALLOWED_ACTIONS, ALLOWED_SOURCES, RESPONSE_MODES, ActionRequest, ErrorCode

ACTION_ALIASES = {
    "summarise": "summarize",
}

MAX_SELECTION_CHARS = 20000
MAX_SKEW_SECONDS = 5 * 60

_REASON_CODES = {
    "unsupported_action": ErrorCode.UNSUPPORTED_ACTION,
    "stale_timestamp": ErrorCode.STALE_TIMESTAMP,
    "payload_too_large": ErrorCode.PAYLOAD_TOO_LARGE,
}


class RequestRejected(ValueError):
    """Raised when a payload cannot be accepted; ``reason`` is a stable code."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason

    @property
    def error_code(self) -> ErrorCode:
        return _REASON_CODES.get(self.reason, ErrorCode.INVALID_PAYLOAD)


def normalize_action(action: Any) -> str:
    if not isinstance(action, str):
        return ""
    normalized = action.strip().lower()
    return ACTION_ALIASES.get(normalized, normalized)


def _clean_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def _clean_tags(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    cleaned = (str(tag).strip() for tag in value)
    return tuple(tag for tag in cleaned if tag)


def normalize_request(payload: Mapping[str, Any]) -> ActionRequest:
    """Return a normalized request. Pure; performs no validation beyond shape."""
    response_mode = _clean_text(payload.get("responseMode"))
    return ActionRequest(
        action=normalize_action(payload.get("action")),
        source=_clean_text(payload.get("source")) or "",
        timestamp=_clean_text(payload.get("timestamp")) or "",
        version=_clean_text(payload.get("version")) or "",
        url=_clean_text(payload.get("url")),
        title=_clean_text(payload.get("title")),
        selection=_clean_text(payload.get("selection")),
        user_prompt=_clean_text(payload.get("userPrompt")),
        tags=_clean_tags(payload.get("tags")),
        response_mode=response_mode.lower() if response_mode else None,
        idempotency_key=_clean_text(payload.get("idempotencyKey")),
    )


def parse_timestamp(value: str) -> Optional[datetime]:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_fresh(timestamp: str, now: Optional[datetime] = None) -> bool:
    parsed = parse_timestamp(timestamp)
    if parsed is None:
        return False
    now = now or datetime.now(timezone.utc)
    return abs((now - parsed).total_seconds()) <= MAX_SKEW_SECONDS


def validate_request(
    request: ActionRequest,
    *,
    now: Optional[datetime] = None,
    check_timestamp: bool = True,
) -> ActionRequest:
    """Raise ``RequestRejected`` for the first failing rule, else return ``request``."""
    if not request.version or not request.action or not request.source or not request.timestamp:
        raise RequestRejected("missing_required_fields")
    if request.action not in ALLOWED_ACTIONS:
        raise RequestRejected("unsupported_action")
    if request.source not in ALLOWED_SOURCES:
        raise RequestRejected("invalid_source")
    if not request.url and not request.selection and not request.user_prompt:
        raise RequestRejected("empty_context")
    if request.action == "prompt" and not request.user_prompt:
        raise RequestRejected("missing_user_prompt")
    if request.selection and len(request.selection) > MAX_SELECTION_CHARS:
        raise RequestRejected("payload_too_large")
    if request.response_mode is not None and request.response_mode not in RESPONSE_MODES:
        raise RequestRejected("invalid_response_mode")
    if request.idempotency_key and any(char in request.idempotency_key for char in "\r\n"):
        raise RequestRejected("invalid_idempotency_key")
    if check_timestamp and not is_fresh(request.timestamp, now):
        raise RequestRejected("stale_timestamp")
    return request
