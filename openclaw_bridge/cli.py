from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .forwarding import (
    ActionDispatcher,
    Outcome,
    RequestRejected,
    canonicalize_url,
    normalize_request,
    validate_request,
)
from .settings import BridgeSettings, SettingsError

EXIT_SENT = 0
EXIT_FAILED = 1
EXIT_QUEUED = 75  # EX_TEMPFAIL


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger("openclaw_bridge").setLevel(logging.DEBUG if debug else logging.INFO)


def load_payload(source: str) -> Dict[str, Any]:
    if source == "-":
        text = sys.stdin.read()
    else:
        text = Path(source).expanduser().read_text(encoding="utf-8")
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("Payload must be a JSON object")
    return data


def payload_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "version": "1",
        "action": args.action,
        "source": args.source,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "idempotencyKey": args.idempotency_key or str(uuid.uuid4()),
    }
    optional = {
        "url": args.url,
        "title": args.title,
        "selection": args.selection,
        "userPrompt": args.prompt,
        "responseMode": args.response_mode,
    }
    payload.update({key: value for key, value in optional.items() if value is not None})
    if args.tags:
        payload["tags"] = list(args.tags)
    return payload


def exit_code_for(outcome: Outcome) -> int:
    if outcome.status == "sent":
        return EXIT_SENT
    if outcome.status == "queued":
        return EXIT_QUEUED
    return EXIT_FAILED


async def run_dispatch(settings: BridgeSettings, payload: Dict[str, Any], check_timestamp: bool) -> Outcome:
    request = validate_request(normalize_request(payload), check_timestamp=check_timestamp)
    dispatcher = ActionDispatcher(settings)
    try:
        return await dispatcher.dispatch(request, str(uuid.uuid4()))
    finally:
        await dispatcher.aclose()


def handle_send(args: argparse.Namespace, parser: argparse.ArgumentParser, settings: BridgeSettings) -> int:
    if args.payload:
        try:
            payload = load_payload(args.payload)
        except (OSError, ValueError) as exc:
            parser.error(f"Cannot read payload: {exc}")
            return 2
    else:
        if not args.action:
            parser.error("send requires --action or --payload")
            return 2
        payload = payload_from_args(args)

    try:
        outcome = asyncio.run(run_dispatch(settings, payload, check_timestamp=not args.skip_freshness))
    except RequestRejected as exc:
        parser.error(f"Request rejected ({exc.error_code.value}): {exc.reason}")
        return 2

    print(json.dumps(outcome.to_dict()))
    return exit_code_for(outcome)


def handle_canonicalize(args: argparse.Namespace) -> int:
    for raw in args.urls:
        canonical = canonicalize_url(raw)
        print(canonical if canonical is not None else "-")
    return 0


def handle_config(settings: BridgeSettings) -> int:
    sys.stdout.write(yaml.safe_dump(settings.redacted(), sort_keys=True))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="openclaw-bridge",
        description="Forward browser actions to OpenClaw and record bookmarks and flashcards.",
    )
    p.add_argument(
        "--config",
        type=Path,
        help="Optional YAML settings file; OPENCLAW_* environment variables take precedence",
    )
    p.add_argument("--debug", action="store_true", help="Enable debug logging for the forwarding pipeline")

    sub = p.add_subparsers(dest="cmd", required=True)

    p_send = sub.add_parser("send", help="Dispatch one action request and print the outcome as JSON")
    p_send.add_argument(
        "--payload",
        help="Path to a JSON action payload, or '-' to read it from stdin. Overrides the flags below.",
    )
    p_send.add_argument("--action", help="summarize, explain, flashcards, bookmark or prompt")
    p_send.add_argument("--source", default="chrome", help="Origin tag (default: chrome)")
    p_send.add_argument("--url", help="Page or link URL")
    p_send.add_argument("--title", help="Page title")
    p_send.add_argument("--selection", help="Selected text")
    p_send.add_argument("--prompt", help="Custom prompt text (required for the prompt action)")
    p_send.add_argument("--tag", dest="tags", action="append", help="Tag to attach; may be repeated")
    p_send.add_argument("--response-mode", choices=["telegram", "silent", "both"], help="Response mode hint")
    p_send.add_argument("--idempotency-key", help="Client idempotency key (default: a fresh UUID)")
    p_send.add_argument(
        "--skip-freshness",
        action="store_true",
        help="Do not reject payloads whose timestamp is more than five minutes off",
    )

    p_canon = sub.add_parser("canonicalize", help="Print the canonical form used for bookmark deduplication")
    p_canon.add_argument("urls", nargs="+", help="URLs to canonicalize")

    sub.add_parser("config", help="Print the effective settings (token redacted)")

    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "canonicalize":
        return handle_canonicalize(args)

    try:
        settings = BridgeSettings.load(config_path=args.config)
    except SettingsError as exc:
        parser.error(str(exc))
        return 2
    if args.debug:
        settings = settings.with_overrides(debug=True)

    if args.cmd == "config":
        return handle_config(settings)

    configure_logging(settings.debug)
    if args.cmd == "send":
        return handle_send(args, parser, settings)

    parser.error("Unknown command")
    return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
