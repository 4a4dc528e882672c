"""Core domain models for flashcard study sessions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

ALL = "all"


class Difficulty(str, Enum):
    """Card difficulty."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class CardStatus(str, Enum):
    """Outcome of a card within the current session."""

    UNANSWERED = "unanswered"
    CORRECT = "correct"
    INCORRECT = "incorrect"


@dataclass(frozen=True)
class TechnologyInfo:
    """Display metadata for one technology tag."""

    id: str
    name: str


TECHNOLOGIES: tuple[TechnologyInfo, ...] = (
    TechnologyInfo("angular", "Angular"),
    TechnologyInfo("react", "React"),
    TechnologyInfo("vue", "Vue.js"),
    TechnologyInfo("javascript", "JavaScript"),
    TechnologyInfo("typescript", "TypeScript"),
    TechnologyInfo("java", "Java"),
    TechnologyInfo("python", "Python"),
    TechnologyInfo("css", "CSS/Tailwind"),
    TechnologyInfo("html", "HTML"),
    TechnologyInfo("node", "Node/Express"),
    TechnologyInfo("nestjs", "NestJS"),
    TechnologyInfo("dotnet", ".NET"),
    TechnologyInfo("springboot", "Spring Boot"),
    TechnologyInfo("django", "Django"),
    TechnologyInfo("mongodb", "MongoDB"),
    TechnologyInfo("aws", "AWS"),
    TechnologyInfo("azure", "Azure"),
    TechnologyInfo("figma", "Figma"),
    TechnologyInfo("uiux", "UI/UX"),
    TechnologyInfo("dsa", "DSA"),
)


@dataclass(frozen=True)
class Flashcard:
    """One question/answer card with lifetime answer counters."""

    id: str
    question: str
    answer: str
    technology: str
    category: str
    difficulty: Difficulty
    code_example: str | None = None
    version: str | None = None
    times_correct: int = 0
    times_incorrect: int = 0
    last_reviewed: datetime | None = None

    @property
    def mastery(self) -> str:
        """Describe lifetime progress on this card."""
        total = self.times_correct + self.times_incorrect
        if total == 0:
            return "Not studied yet"
        accuracy = 100.0 * self.times_correct / total
        if accuracy >= 80:
            return "Mastered"
        if accuracy >= 60:
            return "Learning"
        if accuracy >= 40:
            return "Practicing"
        return "Needs work"


@dataclass(frozen=True)
class StudyStats:
    """Live statistics for the current session."""

    total_cards: int
    total_correct: int
    total_incorrect: int
    accuracy: int
    streak: int


@dataclass(frozen=True)
class SessionSummary:
    """Summary of one completed study session."""

    date: str
    cards_studied: int
    accuracy: int
    time_spent: int

    def to_dict(self) -> dict[str, object]:
        """Return the stored JSON shape."""
        return {
            "date": self.date,
            "cardsStudied": self.cards_studied,
            "accuracy": self.accuracy,
            "timeSpent": self.time_spent,
        }

    @classmethod
    def from_dict(cls, raw: object) -> SessionSummary | None:
        """Build a summary from stored JSON, or return None for malformed rows."""
        if not isinstance(raw, dict):
            return None
        date = raw.get("date")
        values = [raw.get("cardsStudied"), raw.get("accuracy"), raw.get("timeSpent")]
        if not isinstance(date, str):
            return None
        if not all(isinstance(value, int) and not isinstance(value, bool) for value in values):
            return None
        cards_studied, accuracy, time_spent = (int(value) for value in values)  # type: ignore[arg-type]
        return cls(date=date, cards_studied=cards_studied, accuracy=accuracy, time_spent=time_spent)
