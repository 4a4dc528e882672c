"""CLI entrypoint for the flashcard study shell."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Callable
from pathlib import Path

from .content_loader import load_cards
from .models import ALL, CardStatus, Flashcard, SessionSummary
from .service import FlashcardService
from .session import StudySession
from .storage import SqliteBackend, StorageError, StorageService

log = logging.getLogger(__name__)

InputFn = Callable[[str], str]
PrintFn = Callable[[str], None]
DEFAULT_DB_PATH = Path(".studydeck") / "storage.db"
MENU_QUIT_COMMANDS = {"q"}
MENU_BACK_COMMANDS = {"b"}
INTERRUPT_COMMANDS = {":q", ":quit", ":exit"}
SHOW_COMMANDS = {"s", ":show"}
CORRECT_COMMANDS = {"y", "yes"}
INCORRECT_COMMANDS = {"n", "no"}
NEXT_COMMANDS = {">", ""}
PREVIOUS_COMMANDS = {"<"}


def _storage(db_path: Path | None) -> StorageService:
    """Open stored data, running without it when the database is unusable."""
    if db_path is None:
        return StorageService(None)
    try:
        return StorageService(SqliteBackend(db_path))
    except StorageError as exc:
        log.warning("Running without stored data: %s", exc)
        return StorageService(None)


def _session(db_path: Path | None) -> StudySession:
    """Create a study session over the bundled catalog."""
    return StudySession(FlashcardService(load_cards()), _storage(db_path))


def run(argv: list[str] | None = None) -> int:
    """Run the CLI application."""
    parser = argparse.ArgumentParser(prog="studydeck", description="Flashcard study sessions")
    parser.add_argument("command", nargs="?", default="play", choices=["play", "history"])
    parser.add_argument("--db", type=Path, default=DEFAULT_DB_PATH, help="storage database path")
    parser.add_argument("--no-store", action="store_true", help="do not read or write stored history")
    parser.add_argument("--verbose", action="store_true", help="log session events")
    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    session = _session(None if args.no_store else args.db)
    try:
        if args.command == "history":
            _history_flow(session, print)
            return 0
        return play_shell(session)
    finally:
        session.close()
        session.storage.close()


def play_shell(session: StudySession, input_fn: InputFn = input, print_fn: PrintFn = print) -> int:
    """Run the menu-driven study shell."""
    service = session.service
    while True:
        print_fn("\n=== Study Deck ===")
        print_fn(f"Technology: {service.selected_technology}  Category: {service.selected_category}")
        print_fn(f"Cards in scope: {service.total_cards}")
        print_fn("1) Choose technology")
        print_fn("2) Choose category")
        print_fn("3) Start studying")
        print_fn("4) Session history")
        print_fn("q) Quit")
        choice = input_fn("Choose: ").strip().lower()

        if choice == "1":
            _technology_flow(service, input_fn, print_fn)
        elif choice == "2":
            _category_flow(service, input_fn, print_fn)
        elif choice == "3":
            if service.total_cards == 0:
                print_fn("No cards match the current filters.")
                continue
            _study_flow(session, input_fn, print_fn)
        elif choice == "4":
            _history_flow(session, print_fn)
        elif choice in MENU_QUIT_COMMANDS:
            return 0
        else:
            print_fn("Invalid choice.")


def _technology_flow(service: FlashcardService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Pick a technology filter."""
    options = service.technologies()
    print_fn("\n=== Technologies ===")
    print_fn(f" 0) All ({len(service.all_cards)})")
    for idx, (info, count) in enumerate(options, start=1):
        print_fn(f"{idx:>2}) {info.name} ({count})")
    print_fn("b) Back")
    choice = input_fn("Choose technology: ").strip().lower()
    if choice in MENU_BACK_COMMANDS:
        return
    if choice == "0":
        service.set_technology(ALL)
        return
    if choice.isdigit() and 0 < int(choice) <= len(options):
        service.set_technology(options[int(choice) - 1][0].id)
        return
    print_fn("Invalid choice.")


def _category_flow(service: FlashcardService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Pick a category within the selected technology."""
    categories = service.categories()
    print_fn("\n=== Categories ===")
    print_fn(" 0) All")
    for idx, category in enumerate(categories, start=1):
        print_fn(f"{idx:>2}) {category} ({len(service.cards_by_category(category))})")
    print_fn("b) Back")
    choice = input_fn("Choose category: ").strip().lower()
    if choice in MENU_BACK_COMMANDS:
        return
    if choice == "0":
        service.set_category(ALL)
        return
    if choice.isdigit() and 0 < int(choice) <= len(categories):
        service.set_category(categories[int(choice) - 1])
        return
    print_fn("Invalid choice.")


def _study_flow(session: StudySession, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Run sessions until the learner leaves the review screen."""
    while True:
        session.start()
        print_fn("\n=== Study Session ===")
        print_fn("s) show answer  y) got it  n) missed it  >) next  <) previous  :q) end session")
        while session.is_active:
            card = session.service.current_card
            if card is None:
                session.end()
                break
            _print_card(session, card, print_fn)
            command = input_fn("> ").strip().lower()
            if command in INTERRUPT_COMMANDS:
                session.interrupt()
            elif command in SHOW_COMMANDS:
                print_fn(f"Answer: {card.answer}")
                if card.code_example:
                    print_fn(card.code_example)
            elif command in CORRECT_COMMANDS or command in INCORRECT_COMMANDS:
                session.answer(card.id, command in CORRECT_COMMANDS)
                session.advance()
            elif command in NEXT_COMMANDS:
                session.advance()
            elif command in PREVIOUS_COMMANDS:
                session.retreat()
            else:
                print_fn("Unknown command.")

        summary = session.last_summary
        if summary is not None:
            _print_summary(summary, print_fn)
        print_fn("r) Study again")
        print_fn("b) Back")
        if input_fn("Choose: ").strip().lower() != "r":
            return


def _print_card(session: StudySession, card: Flashcard, print_fn: PrintFn) -> None:
    service = session.service
    stats = service.stats
    status = service.card_status(card.id)
    marker = "" if status is CardStatus.UNANSWERED else f" [{status.value}]"
    version = f", {card.version}" if card.version else ""
    print_fn(
        f"\nCard {service.current_index + 1}/{service.total_cards}{marker}"
        f"  ({card.category}, {card.difficulty.value}{version})"
    )
    print_fn(f"Accuracy {stats.accuracy}%  Streak {stats.streak}  Time {format_time(session.elapsed)}")
    print_fn(f"Q: {card.question}")


def _print_summary(summary: SessionSummary, print_fn: PrintFn) -> None:
    print_fn("\n=== Session Complete ===")
    print_fn(f"- Cards studied: {summary.cards_studied}")
    print_fn(f"- Accuracy: {format_accuracy(summary.accuracy)}")
    print_fn(f"- Time: {format_time(summary.time_spent)}")


def _history_flow(session: StudySession, print_fn: PrintFn) -> None:
    """Print stored session summaries, newest first."""
    history = session.history()
    print_fn("\n=== Session History ===")
    if not history:
        print_fn("No sessions recorded yet.")
        return
    header = f"{'Date':<16} {'Cards':>5} {'Accuracy':>8} {'Time':>6}"
    print_fn(header)
    print_fn("-" * len(header))
    for item in reversed(history):
        print_fn(f"{item.date[:16]:<16} {item.cards_studied:>5} {item.accuracy:>7}% {format_time(item.time_spent):>6}")


def format_time(seconds: int) -> str:
    """Format seconds as m:ss."""
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}:{secs:02d}"


def format_accuracy(value: int | None) -> str:
    """Format accuracy with a short encouragement label."""
    if value is None:
        return "N/A"
    if value >= 80:
        return f"{value}% (excellent)"
    if value >= 60:
        return f"{value}% (good)"
    if value >= 40:
        return f"{value}% (keep going)"
    return f"{value}% (needs practice)"


def main_entry() -> None:
    """Console script entrypoint."""
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
