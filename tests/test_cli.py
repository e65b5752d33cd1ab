import json

import pytest

from openclaw_bridge import cli


def test_canonicalize_prints_one_line_per_url(capsys):
    code = cli.main(["canonicalize", "HTTPS://Example.com:443/a/?utm_source=x&b=2&a=1#top", "not a url"])

    assert code == 0
    assert capsys.readouterr().out.splitlines() == ["https://example.com/a?a=1&b=2", "-"]


def test_send_bookmark_writes_store_and_prints_outcome(tmp_path, monkeypatch, capsys):
    marks = tmp_path / "BOOKMARKS.md"
    monkeypatch.setenv("OPENCLAW_BOOKMARKS_PATH", str(marks))
    monkeypatch.setenv("OPENCLAW_FLASHCARDS_PATH", str(tmp_path / "FLASHCARDS.md"))

    code = cli.main(
        ["send", "--action", "bookmark", "--url", "https://example.com/post", "--title", "Post", "--tag", "Read Later"]
    )

    assert code == 0
    outcome = json.loads(capsys.readouterr().out)
    assert outcome["status"] == "sent"
    content = marks.read_text(encoding="utf-8")
    assert content.startswith("# BOOKMARKS\n")
    assert "[Post](<https://example.com/post>)" in content
    assert "  - tags: #read-later" in content


def test_send_reads_payload_file(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("OPENCLAW_BOOKMARKS_PATH", str(tmp_path / "BOOKMARKS.md"))
    payload = tmp_path / "payload.json"
    payload.write_text(
        json.dumps(
            {
                "version": "1",
                "action": "bookmark",
                "source": "macos",
                "timestamp": "2020-01-01T00:00:00Z",
                "url": "https://example.com",
            }
        ),
        encoding="utf-8",
    )

    code = cli.main(["send", "--payload", str(payload), "--skip-freshness"])

    assert code == 0
    assert json.loads(capsys.readouterr().out)["status"] == "sent"


def test_send_without_upstream_exits_failed(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("OPENCLAW_FORWARD_MAX_RETRIES", "0")
    monkeypatch.setenv("OPENCLAW_BOOKMARKS_PATH", str(tmp_path / "BOOKMARKS.md"))

    code = cli.main(["send", "--action", "summarize", "--url", "https://example.com"])

    assert code == cli.EXIT_FAILED
    assert json.loads(capsys.readouterr().out)["errorCode"] == "UPSTREAM_UNAVAILABLE"


def test_rejected_request_is_a_usage_error(capsys):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["send", "--action", "prompt", "--url", "https://example.com"])

    assert excinfo.value.code == 2
    assert "missing_user_prompt" in capsys.readouterr().err


def test_send_requires_action_or_payload():
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["send"])

    assert excinfo.value.code == 2


def test_config_prints_redacted_yaml(monkeypatch, capsys):
    monkeypatch.setenv("OPENCLAW_TOKEN", "secret")
    monkeypatch.setenv("OPENCLAW_TELEGRAM_TARGET", "chat-1")

    code = cli.main(["config"])

    out = capsys.readouterr().out
    assert code == 0
    assert "token: '***'" in out
    assert "secret" not in out
    assert "telegram_target: chat-1" in out
