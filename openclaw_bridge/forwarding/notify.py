"""Secondary-channel delivery through the OpenClaw CLI."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ..settings import BridgeSettings

_logger = logging.getLogger(__name__)


class NotificationError(RuntimeError):
    """Raised when a message could not be delivered to the secondary channel."""


@dataclass(frozen=True)
class NotificationMessage:
    channel: str
    target: str
    message: str
    timeout_ms: int


SendFn = Callable[[NotificationMessage], Awaitable[None]]


class NotificationSink:
    """Sends short messages with ``<cli> message send``; a no-op sink when no target is set."""

    def __init__(
        self,
        target: Optional[str],
        *,
        channel: str = "telegram",
        timeout_ms: int = 8000,
        cli_path: str = "openclaw",
        send_fn: Optional[SendFn] = None,
    ) -> None:
        self.target = target
        self.channel = channel
        self.timeout_ms = timeout_ms
        self.cli_path = cli_path
        self._send_fn = send_fn or self._send_with_cli

    @classmethod
    def from_settings(cls, settings: BridgeSettings, send_fn: Optional[SendFn] = None) -> "NotificationSink":
        return cls(
            settings.telegram_target,
            channel=settings.telegram_channel,
            timeout_ms=settings.telegram_timeout_ms,
            cli_path=settings.cli_path,
            send_fn=send_fn,
        )

    @property
    def configured(self) -> bool:
        return bool(self.target)

    async def deliver(self, message: str) -> None:
        """Send ``message`` and wait for it; raises ``NotificationError`` on any failure."""
        if not self.target:
            raise NotificationError("No notification target configured")
        envelope = NotificationMessage(
            channel=self.channel,
            target=self.target,
            message=message,
            timeout_ms=self.timeout_ms,
        )
        try:
            await asyncio.wait_for(self._send_fn(envelope), timeout=self.timeout_ms / 1000.0)
        except asyncio.TimeoutError as exc:
            raise NotificationError(f"Notification send timed out after {self.timeout_ms} ms") from exc
        except NotificationError:
            raise
        except Exception as exc:
            raise NotificationError(f"Notification send failed: {exc}") from exc

    async def _send_with_cli(self, envelope: NotificationMessage) -> None:
        argv = [
            self.cli_path,
            "message",
            "send",
            "--channel",
            envelope.channel,
            "--target",
            envelope.target,
            "--message",
            envelope.message,
        ]
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise NotificationError(f"Cannot start {self.cli_path}: {exc}") from exc

        try:
            _, stderr = await proc.communicate()
        except asyncio.CancelledError:
            # deliver() cancels on timeout; do not leave the CLI running.
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            raise

        if proc.returncode != 0:
            detail = (stderr or b"").decode("utf-8", errors="replace").strip()[:500]
            raise NotificationError(
                f"{self.cli_path} message send exited with {proc.returncode}" + (f": {detail}" if detail else "")
            )
        _logger.debug("notification-sent", extra={"notify": {"channel": envelope.channel}})
