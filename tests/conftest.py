"""Shared fixtures for the forwarding pipeline tests."""

import os
from datetime import datetime, timezone

import pytest

from openclaw_bridge.forwarding import ActionRequest
from openclaw_bridge.settings import BridgeSettings


@pytest.fixture(autouse=True)
def _clean_openclaw_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("OPENCLAW_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings(tmp_path):
    return BridgeSettings(
        base_url="https://openclaw.example.com/",
        token="token",
        max_retries=1,
        retry_base_ms=0,
        bookmarks_path=tmp_path / "BOOKMARKS.md",
        flashcards_path=tmp_path / "FLASHCARDS.md",
    )


def make_request(action="summarize", **overrides):
    values = {
        "action": action,
        "source": "chrome",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "url": "https://example.com",
    }
    values.update(overrides)
    return ActionRequest(**values)
