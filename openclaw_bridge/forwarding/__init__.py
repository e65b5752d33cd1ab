"""Shared exports for the forwarding-and-persistence pipeline."""
from __future__ import annotations

from .completion_client import (
    ChatCompletionResult,
    CompletionClient,
    ForwardingError,
    MalformedResponse,
    UpstreamRejected,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from .dispatcher import ActionDispatcher
from .flashcards import Flashcard, FlashcardDeck, parse_flashcards
from .normalize import RequestRejected, normalize_request, validate_request
from .notify import NotificationError, NotificationMessage, NotificationSink
from .stores import AppendOnlyStore, BookmarkStore, FlashcardStore
from .types import ActionRequest, AppendResult, ErrorCode, Outcome
from .urls import canonicalize_url


__all__ = [
    "ActionRequest",
    "Outcome",
    "ErrorCode",
    "AppendResult",
    "normalize_request",
    "validate_request",
    "RequestRejected",
    "canonicalize_url",
    "AppendOnlyStore",
    "BookmarkStore",
    "FlashcardStore",
    "CompletionClient",
    "ChatCompletionResult",
    "ForwardingError",
    "UpstreamTimeout",
    "UpstreamUnavailable",
    "UpstreamRejected",
    "MalformedResponse",
    "Flashcard",
    "FlashcardDeck",
    "parse_flashcards",
    "NotificationSink",
    "NotificationMessage",
    "NotificationError",
    "ActionDispatcher",
]
