"""Relay browser actions to OpenClaw and keep bookmark/flashcard logs."""

__version__ = "0.1.0"
