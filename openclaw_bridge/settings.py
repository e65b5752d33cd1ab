"""Process-wide configuration assembled once at startup."""
from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

_TRUE_VALUES = {"1", "true", "yes", "on"}

_ENV_FIELDS = {
    "OPENCLAW_BASE_URL": "base_url",
    "OPENCLAW_TOKEN": "token",
    "OPENCLAW_SESSION_KEY": "session_key",
    "OPENCLAW_AGENT_ID": "agent_id",
    "OPENCLAW_MODEL": "model",
    "OPENCLAW_FORWARD_TIMEOUT_MS": "timeout_ms",
    "OPENCLAW_FORWARD_MAX_RETRIES": "max_retries",
    "OPENCLAW_FORWARD_RETRY_BASE_MS": "retry_base_ms",
    "OPENCLAW_FORWARD_DEBUG": "debug",
    "OPENCLAW_TELEGRAM_TARGET": "telegram_target",
    "OPENCLAW_TELEGRAM_CHANNEL": "telegram_channel",
    "OPENCLAW_TELEGRAM_SEND_TIMEOUT_MS": "telegram_timeout_ms",
    "OPENCLAW_CLI_PATH": "cli_path",
    "OPENCLAW_BOOKMARKS_PATH": "bookmarks_path",
    "OPENCLAW_FLASHCARDS_PATH": "flashcards_path",
}


class SettingsError(ValueError):
    """Raised when a configuration value cannot be interpreted."""


def default_bookmarks_path() -> Path:
    return (Path.cwd() / ".." / "BOOKMARKS.md").resolve()


def default_flashcards_path() -> Path:
    return (Path.cwd() / ".." / "FLASHCARDS.md").resolve()


@dataclass(frozen=True)
class BridgeSettings:
    """Explicit settings passed to the dispatcher, client, stores and sink."""

    base_url: Optional[str] = None
    token: Optional[str] = None
    session_key: str = "agent:main:main"
    agent_id: Optional[str] = None
    model: str = "openclaw:main"
    timeout_ms: int = 6000
    max_retries: int = 1
    retry_base_ms: int = 200
    debug: bool = False
    telegram_target: Optional[str] = None
    telegram_channel: str = "telegram"
    telegram_timeout_ms: int = 8000
    cli_path: str = "openclaw"
    bookmarks_path: Optional[Path] = None
    flashcards_path: Optional[Path] = None

    def __post_init__(self) -> None:
        # Frozen, so normalize through object.__setattr__.
        for name in ("timeout_ms", "max_retries", "retry_base_ms", "telegram_timeout_ms"):
            object.__setattr__(self, name, _as_int(name, getattr(self, name)))
        object.__setattr__(self, "max_retries", max(0, self.max_retries))
        object.__setattr__(self, "retry_base_ms", max(0, self.retry_base_ms))
        object.__setattr__(self, "debug", _as_bool(self.debug))
        for name in ("base_url", "token", "agent_id", "telegram_target"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, str(value).strip() or None)
        object.__setattr__(
            self,
            "bookmarks_path",
            Path(self.bookmarks_path).expanduser() if self.bookmarks_path else default_bookmarks_path(),
        )
        object.__setattr__(
            self,
            "flashcards_path",
            Path(self.flashcards_path).expanduser() if self.flashcards_path else default_flashcards_path(),
        )

    @property
    def upstream_configured(self) -> bool:
        return bool(self.base_url and self.token)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def retry_base_seconds(self) -> float:
        return self.retry_base_ms / 1000.0

    @classmethod
    def load(
        cls,
        config_path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "BridgeSettings":
        """Merge an optional YAML file with environment overrides."""
        values: Dict[str, Any] = {}
        if config_path:
            values.update(load_config_file(Path(config_path)))
        env = os.environ if environ is None else environ
        for env_name, field_name in _ENV_FIELDS.items():
            raw = env.get(env_name)
            if raw is not None and raw.strip():
                values[field_name] = raw.strip()
        return cls(**values)

    def with_overrides(self, **changes: Any) -> "BridgeSettings":
        return replace(self, **changes)

    def redacted(self) -> Dict[str, Any]:
        data = asdict(self)
        if data.get("token"):
            data["token"] = "***"
        for key in ("bookmarks_path", "flashcards_path"):
            data[key] = str(data[key])
        return data


def load_config_file(path: Path) -> Dict[str, Any]:
    path = path.expanduser()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SettingsError(f"Cannot read config file {path}: {exc}") from exc
    data = yaml.safe_load(text) if text.strip() else {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SettingsError(f"Config file {path} must contain a mapping")

    known = {f.name for f in fields(BridgeSettings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise SettingsError(f"Unknown config keys in {path}: {', '.join(unknown)}")
    return data


def _as_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise SettingsError(f"{name} must be an integer, got {value!r}")
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise SettingsError(f"{name} must be an integer, got {value!r}") from exc


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES
