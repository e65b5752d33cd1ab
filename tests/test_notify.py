import asyncio
import stat

import pytest

from openclaw_bridge.forwarding import NotificationError, NotificationMessage, NotificationSink
from openclaw_bridge.settings import BridgeSettings


def _fake_cli(tmp_path, body):
    script = tmp_path / "openclaw"
    script.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IEXEC)
    return script


def test_sink_from_settings_is_unconfigured_without_target(tmp_path):
    settings = BridgeSettings(bookmarks_path=tmp_path / "b.md", flashcards_path=tmp_path / "f.md")

    sink = NotificationSink.from_settings(settings)

    assert not sink.configured
    with pytest.raises(NotificationError):
        asyncio.run(sink.deliver("hello"))


def test_send_fn_receives_envelope():
    received = []

    async def send(envelope):
        received.append(envelope)

    sink = NotificationSink("chat-1", channel="telegram", timeout_ms=1234, send_fn=send)
    asyncio.run(sink.deliver("Saved"))

    assert received == [NotificationMessage(channel="telegram", target="chat-1", message="Saved", timeout_ms=1234)]


def test_send_fn_errors_become_notification_errors():
    async def send(envelope):
        raise RuntimeError("boom")

    sink = NotificationSink("chat-1", send_fn=send)

    with pytest.raises(NotificationError, match="boom"):
        asyncio.run(sink.deliver("Saved"))


def test_send_is_bounded_by_timeout():
    async def send(envelope):
        await asyncio.sleep(5)

    sink = NotificationSink("chat-1", timeout_ms=20, send_fn=send)

    with pytest.raises(NotificationError, match="timed out"):
        asyncio.run(sink.deliver("Saved"))


def test_cli_sender_passes_channel_target_and_message(tmp_path):
    log = tmp_path / "args.txt"
    script = _fake_cli(tmp_path, f'for arg in "$@"; do echo "$arg" >> "{log}"; done\n')
    sink = NotificationSink("chat-1", channel="telegram", cli_path=str(script))

    asyncio.run(sink.deliver("Bookmark saved: Example"))

    assert log.read_text(encoding="utf-8").splitlines() == [
        "message",
        "send",
        "--channel",
        "telegram",
        "--target",
        "chat-1",
        "--message",
        "Bookmark saved: Example",
    ]


def test_cli_sender_reports_non_zero_exit(tmp_path):
    script = _fake_cli(tmp_path, 'echo "bad target" >&2\nexit 3\n')
    sink = NotificationSink("chat-1", cli_path=str(script))

    with pytest.raises(NotificationError, match="exited with 3: bad target"):
        asyncio.run(sink.deliver("hello"))


def test_cli_sender_reports_missing_binary(tmp_path):
    sink = NotificationSink("chat-1", cli_path=str(tmp_path / "missing-openclaw"))

    with pytest.raises(NotificationError, match="Cannot start"):
        asyncio.run(sink.deliver("hello"))
