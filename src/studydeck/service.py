"""Catalog filtering, navigation and answer tracking for study sessions."""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import UTC, datetime
from uuid import uuid4

from .models import ALL, TECHNOLOGIES, CardStatus, Difficulty, Flashcard, StudyStats, TechnologyInfo

Listener = Callable[["FlashcardService"], None]


def compute_stats(statuses: Iterable[CardStatus], total_cards: int) -> StudyStats:
    """Derive accuracy and streak from session outcomes in answer order."""
    outcomes = list(statuses)
    correct = sum(1 for status in outcomes if status is CardStatus.CORRECT)
    incorrect = sum(1 for status in outcomes if status is CardStatus.INCORRECT)
    answered = correct + incorrect
    # Half rounds up, so 12.5% reports as 13.
    accuracy = math.floor(100 * correct / answered + 0.5) if answered else 0

    streak = 0
    for status in reversed(outcomes):
        if status is not CardStatus.CORRECT:
            break
        streak += 1

    return StudyStats(
        total_cards=total_cards,
        total_correct=correct,
        total_incorrect=incorrect,
        accuracy=accuracy,
        streak=streak,
    )


class FlashcardService:
    """Owns the catalog and the current session's filter, cursor and answers.

    Every mutating method finishes its state change before listeners are
    notified, so a listener always sees a consistent snapshot. Derived values
    (active set, stats) are recomputed from state on each access.
    """

    def __init__(self, cards: Iterable[Flashcard], clock: Callable[[], datetime] | None = None) -> None:
        self._cards: list[Flashcard] = list(cards)
        self._technology = ALL
        self._category = ALL
        self._index = 0
        self._statuses: dict[str, CardStatus] = {}
        self._listeners: list[Listener] = []
        self._clock = clock or (lambda: datetime.now(UTC))

    # Derived state

    @property
    def all_cards(self) -> list[Flashcard]:
        """Return the full catalog, independent of filters."""
        return list(self._cards)

    @property
    def selected_technology(self) -> str:
        return self._technology

    @property
    def selected_category(self) -> str:
        return self._category

    @property
    def flashcards(self) -> list[Flashcard]:
        """Return the active set in catalog order."""
        return [card for card in self._technology_cards() if self._category in (ALL, card.category)]

    @property
    def total_cards(self) -> int:
        return len(self.flashcards)

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def current_card(self) -> Flashcard | None:
        """Return the card under the cursor, or None for an empty active set."""
        cards = self.flashcards
        if not cards:
            return None
        return cards[self._index]

    @property
    def is_last_card(self) -> bool:
        return self._index >= self.total_cards - 1

    @property
    def card_statuses(self) -> dict[str, CardStatus]:
        """Return a copy of the session outcomes in answer order."""
        return dict(self._statuses)

    @property
    def stats(self) -> StudyStats:
        return compute_stats(self._statuses.values(), self.total_cards)

    def card_status(self, card_id: str) -> CardStatus:
        return self._statuses.get(card_id, CardStatus.UNANSWERED)

    def get_card(self, card_id: str) -> Flashcard | None:
        """Look up a catalog card by id."""
        for card in self._cards:
            if card.id == card_id:
                return card
        return None

    def categories(self) -> list[str]:
        """Return unique categories for the selected technology, first-seen order."""
        return list(dict.fromkeys(card.category for card in self._technology_cards()))

    def cards_by_category(self, category: str) -> list[Flashcard]:
        return [card for card in self._technology_cards() if card.category == category]

    def cards_by_technology(self, technology: str) -> list[Flashcard]:
        return [card for card in self._cards if card.technology == technology]

    def technologies(self) -> list[tuple[TechnologyInfo, int]]:
        """Return known technologies that have cards, with their card counts."""
        counts: dict[str, int] = {}
        for card in self._cards:
            counts[card.technology] = counts.get(card.technology, 0) + 1
        return [(info, counts[info.id]) for info in TECHNOLOGIES if counts.get(info.id, 0) > 0]

    # Filters

    def set_technology(self, technology: str) -> None:
        """Switch technology, starting a fresh session scope."""
        self._technology = technology
        self._category = ALL
        self._index = 0
        self._statuses = {}
        self._notify()

    def set_category(self, category: str) -> None:
        """Narrow the active set by category, keeping session answers."""
        self._category = category
        self._clamp_index()
        self._notify()

    # Navigation

    def advance(self) -> bool:
        """Move to the next card; return False when already on the last one."""
        if self.is_last_card:
            return False
        self._index += 1
        self._notify()
        return True

    def retreat(self) -> None:
        if self._index == 0:
            return
        self._index -= 1
        self._notify()

    # Answers

    def record_answer(self, card_id: str, outcome: CardStatus | bool) -> None:
        """Record a session outcome and bump the card's lifetime counters.

        Raises:
            KeyError: card_id is not in the catalog.
            ValueError: outcome is UNANSWERED.
        """
        status = _coerce_outcome(outcome)
        position = self._position(card_id)
        card = self._cards[position]
        correct = status is CardStatus.CORRECT
        self._cards[position] = replace(
            card,
            times_correct=card.times_correct + (1 if correct else 0),
            times_incorrect=card.times_incorrect + (0 if correct else 1),
            last_reviewed=self._clock(),
        )
        self._statuses[card_id] = status
        self._notify()

    def reset_study_session(self) -> None:
        """Return to the first card and forget session outcomes."""
        self._index = 0
        self._statuses = {}
        self._notify()

    # Catalog edits

    def add_card(
        self,
        question: str,
        answer: str,
        technology: str,
        category: str,
        difficulty: Difficulty = Difficulty.MEDIUM,
        code_example: str | None = None,
        version: str | None = None,
    ) -> Flashcard:
        """Append a new card with a fresh id and zeroed counters."""
        card = Flashcard(
            id=str(uuid4()),
            question=question,
            answer=answer,
            technology=technology,
            category=category,
            difficulty=difficulty,
            code_example=code_example,
            version=version,
        )
        self._cards.append(card)
        self._notify()
        return card

    def remove_card(self, card_id: str) -> bool:
        """Delete a card and its session outcome; return whether it existed."""
        remaining = [card for card in self._cards if card.id != card_id]
        if len(remaining) == len(self._cards):
            return False
        self._cards = remaining
        self._statuses.pop(card_id, None)
        self._clamp_index()
        self._notify()
        return True

    # Change notification

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener after each state change; return an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _technology_cards(self) -> list[Flashcard]:
        if self._technology == ALL:
            return list(self._cards)
        return [card for card in self._cards if card.technology == self._technology]

    def _clamp_index(self) -> None:
        self._index = max(0, min(self._index, self.total_cards - 1))

    def _position(self, card_id: str) -> int:
        for position, card in enumerate(self._cards):
            if card.id == card_id:
                return position
        raise KeyError(card_id)


def _coerce_outcome(outcome: CardStatus | bool) -> CardStatus:
    """Map a bool or status to CORRECT/INCORRECT."""
    if isinstance(outcome, bool):
        return CardStatus.CORRECT if outcome else CardStatus.INCORRECT
    status = CardStatus(outcome)
    if status is CardStatus.UNANSWERED:
        raise ValueError("Only correct or incorrect outcomes can be recorded.")
    return status
