from pathlib import Path

import pytest

from openclaw_bridge.settings import BridgeSettings, SettingsError


def test_defaults_match_documented_values(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    settings = BridgeSettings.load(environ={})

    assert settings.base_url is None
    assert not settings.upstream_configured
    assert settings.session_key == "agent:main:main"
    assert settings.timeout_ms == 6000
    assert settings.max_retries == 1
    assert settings.retry_base_ms == 200
    assert settings.telegram_channel == "telegram"
    assert settings.telegram_timeout_ms == 8000
    assert settings.bookmarks_path == (tmp_path.parent / "BOOKMARKS.md").resolve()
    assert settings.flashcards_path == (tmp_path.parent / "FLASHCARDS.md").resolve()


def test_environment_values_are_parsed():
    settings = BridgeSettings.load(
        environ={
            "OPENCLAW_BASE_URL": " https://openclaw.example.com ",
            "OPENCLAW_TOKEN": "token",
            "OPENCLAW_FORWARD_MAX_RETRIES": "3",
            "OPENCLAW_FORWARD_TIMEOUT_MS": "10",
            "OPENCLAW_FORWARD_DEBUG": "true",
            "OPENCLAW_TELEGRAM_TARGET": "chat-1",
            "OPENCLAW_BOOKMARKS_PATH": "/tmp/marks.md",
        }
    )

    assert settings.base_url == "https://openclaw.example.com"
    assert settings.upstream_configured
    assert settings.max_retries == 3
    assert settings.timeout_seconds == 0.01
    assert settings.debug is True
    assert settings.telegram_target == "chat-1"
    assert settings.bookmarks_path == Path("/tmp/marks.md")


def test_environment_overrides_yaml_file(tmp_path):
    config = tmp_path / "bridge.yaml"
    config.write_text("base_url: https://from-file.example.com\nmodel: file-model\nmax_retries: 4\n", encoding="utf-8")

    settings = BridgeSettings.load(config_path=config, environ={"OPENCLAW_MODEL": "env-model"})

    assert settings.base_url == "https://from-file.example.com"
    assert settings.model == "env-model"
    assert settings.max_retries == 4


def test_negative_retries_clamp_to_zero(tmp_path):
    settings = BridgeSettings(max_retries=-2, bookmarks_path=tmp_path / "b.md")

    assert settings.max_retries == 0


def test_invalid_numbers_raise_settings_error():
    with pytest.raises(SettingsError):
        BridgeSettings.load(environ={"OPENCLAW_FORWARD_TIMEOUT_MS": "soon"})


def test_unknown_yaml_keys_are_rejected(tmp_path):
    config = tmp_path / "bridge.yaml"
    config.write_text("base_uri: typo\n", encoding="utf-8")

    with pytest.raises(SettingsError, match="base_uri"):
        BridgeSettings.load(config_path=config, environ={})


def test_redacted_hides_token(tmp_path):
    settings = BridgeSettings(token="secret", bookmarks_path=tmp_path / "b.md", flashcards_path=tmp_path / "f.md")

    data = settings.redacted()

    assert data["token"] == "***"
    assert data["bookmarks_path"] == str(tmp_path / "b.md")
