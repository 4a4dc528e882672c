"""Load the flashcard catalog from bundled JSON resources."""

from __future__ import annotations

import json
from importlib import resources
from pathlib import Path
from typing import Any

from .models import Difficulty, Flashcard

CONTENT_PACKAGE = "studydeck.content.cards"


def _card_from_dict(technology: str, raw: dict[str, Any]) -> Flashcard:
    """Build a card from raw JSON content."""
    card_id = str(raw.get("id", "")).strip()
    if not card_id:
        raise ValueError(f"Card in '{technology}' deck has no id.")

    question = str(raw.get("question", "")).strip()
    answer = str(raw.get("answer", "")).strip()
    if not question or not answer:
        raise ValueError(f"Card '{card_id}' needs both a question and an answer.")

    difficulty_raw = str(raw.get("difficulty", Difficulty.MEDIUM.value)).strip().lower()
    try:
        difficulty = Difficulty(difficulty_raw)
    except ValueError:
        raise ValueError(f"Card '{card_id}' has unknown difficulty '{difficulty_raw}'.") from None

    code_example = raw.get("codeExample")
    version = raw.get("version")
    return Flashcard(
        id=card_id,
        question=question,
        answer=answer,
        technology=str(raw.get("technology", technology)),
        category=str(raw.get("category", "General")),
        difficulty=difficulty,
        code_example=str(code_example) if code_example else None,
        version=str(version) if version else None,
    )


def _deck_from_dict(raw: dict[str, Any]) -> list[Flashcard]:
    """Build all cards of one technology deck."""
    technology = str(raw["technology"])
    return [_card_from_dict(technology, item) for item in raw.get("cards", [])]


def load_cards() -> list[Flashcard]:
    """Load the bundled catalog in deck file order."""
    entries = [entry for entry in resources.files(CONTENT_PACKAGE).iterdir() if entry.name.endswith(".json")]
    cards: list[Flashcard] = []
    for entry in sorted(entries, key=lambda item: item.name):
        raw = json.loads(entry.read_text(encoding="utf-8-sig"))
        cards.extend(_deck_from_dict(raw))
    _validate_unique_card_ids(cards)
    return cards


def load_cards_from_dir(path: Path) -> list[Flashcard]:
    """Load a catalog from a directory of deck files."""
    cards: list[Flashcard] = []
    for file_path in sorted(path.glob("*.json")):
        raw = json.loads(file_path.read_text(encoding="utf-8-sig"))
        cards.extend(_deck_from_dict(raw))
    _validate_unique_card_ids(cards)
    return cards


def _validate_unique_card_ids(cards: list[Flashcard]) -> None:
    """Validate that card IDs are unique across all decks."""
    seen: dict[str, str] = {}
    for card in cards:
        previous = seen.get(card.id)
        if previous is not None:
            raise ValueError(f"Duplicate card id: {card.id} (in {previous} and {card.technology})")
        seen[card.id] = card.technology
