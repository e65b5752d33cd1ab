"""Lenient parsing of flashcard decks returned by the remote model."""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

MAX_CARDS = 20
GENERIC_TITLE = "Flashcards"

FLASHCARDS_INSTRUCTIONS = (
    "Create study flashcards from the context above. Reply with JSON only, shaped as "
    '{"title": "<deck title>", "cards": [{"question": "...", "answer": "..."}]}, '
    f"with at most {MAX_CARDS} cards."
)

_FENCE_RE = re.compile(r"```(?:[A-Za-z0-9_-]+)?[ \t]*\n?(.*?)```", re.DOTALL)


@dataclass(frozen=True)
class Flashcard:
    question: str
    answer: str


@dataclass(frozen=True)
class FlashcardDeck:
    """A parsed deck, or the raw model text when nothing parsed (``cards`` empty)."""

    title: str
    cards: Tuple[Flashcard, ...] = ()
    raw_text: Optional[str] = None

    @property
    def structured(self) -> bool:
        return bool(self.cards)

    def render(self) -> str:
        if not self.cards:
            return self.raw_text or ""
        blocks = [
            f"Q{index}: {card.question}\nA{index}: {card.answer}"
            for index, card in enumerate(self.cards, start=1)
        ]
        return "\n\n".join(blocks)


def _whole_text(text: str) -> Optional[str]:
    return text.strip() or None


def _fenced_block(text: str) -> Optional[str]:
    match = _FENCE_RE.search(text)
    if not match:
        return None
    return match.group(1).strip() or None


def _brace_span(text: str) -> Optional[str]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


CANDIDATE_STRATEGIES: Sequence[Callable[[str], Optional[str]]] = (
    _whole_text,
    _fenced_block,
    _brace_span,
)


def _clean_string(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def deck_from_json(candidate: str) -> Optional[FlashcardDeck]:
    """Return a deck when ``candidate`` is a JSON object with a title and usable cards."""
    try:
        data = json.loads(candidate)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None

    title = _clean_string(data.get("title"))
    raw_cards = data.get("cards")
    if not title or not isinstance(raw_cards, list):
        return None

    cards: List[Flashcard] = []
    for item in raw_cards:
        if not isinstance(item, dict):
            continue
        question = _clean_string(item.get("question"))
        answer = _clean_string(item.get("answer"))
        if question and answer:
            cards.append(Flashcard(question=question, answer=answer))
        if len(cards) >= MAX_CARDS:
            break

    if not cards:
        return None
    return FlashcardDeck(title=title, cards=tuple(cards))


def parse_flashcards(text: str, fallback_title: Optional[str] = None) -> FlashcardDeck:
    for strategy in CANDIDATE_STRATEGIES:
        candidate = strategy(text)
        if candidate is None:
            continue
        deck = deck_from_json(candidate)
        if deck is not None:
            return deck
    return FlashcardDeck(title=fallback_title or GENERIC_TITLE, raw_text=text)
