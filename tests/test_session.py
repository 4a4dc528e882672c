import time
from datetime import UTC, datetime
from typing import Any

from studydeck.models import CardStatus, Difficulty, Flashcard, SessionSummary
from studydeck.service import FlashcardService
from studydeck.session import ManualTicker, SessionState, SessionTimer, StudySession, ThreadTicker
from studydeck.storage import MemoryBackend, StorageService

ENDED_AT = datetime(2026, 4, 2, 18, 0, tzinfo=UTC)


def _cards(count: int) -> list[Flashcard]:
    return [
        Flashcard(
            id=f"c{n}",
            question=f"Q{n}",
            answer=f"A{n}",
            technology="python",
            category="Core",
            difficulty=Difficulty.MEDIUM,
        )
        for n in range(count)
    ]


def _session(count: int = 4) -> tuple[StudySession, ManualTicker]:
    ticker = ManualTicker()
    session = StudySession(
        FlashcardService(_cards(count)),
        StorageService(MemoryBackend()),
        ticker,
        clock=lambda: ENDED_AT,
    )
    return session, ticker


def test_new_session_is_idle() -> None:
    session, ticker = _session()
    assert session.state is SessionState.IDLE
    assert session.elapsed == 0
    assert ticker.active_count == 0
    assert session.history() == []


def test_start_resets_cursor_answers_and_timer() -> None:
    session, ticker = _session()
    session.service.record_answer("c1", True)
    session.service.advance()

    session.start()

    assert session.state is SessionState.ACTIVE
    assert session.service.current_index == 0
    assert session.service.card_statuses == {}
    assert ticker.active_count == 1
    ticker.tick(3)
    assert session.elapsed == 3


def test_end_records_summary_and_stops_timer() -> None:
    session, ticker = _session()
    session.start()
    session.answer("c0", True)
    session.answer("c1", True)
    session.answer("c2", False)
    ticker.tick(42)

    summary = session.end()

    assert summary == SessionSummary(date=ENDED_AT.isoformat(), cards_studied=3, accuracy=67, time_spent=42)
    assert session.state is SessionState.REVIEWING
    assert session.last_summary == summary
    assert ticker.active_count == 0
    ticker.tick(5)
    assert session.elapsed == 42
    assert session.history() == [summary]


def test_terminal_advance_ends_session() -> None:
    session, ticker = _session(4)
    session.start()
    assert session.advance() is True
    assert session.advance() is True
    assert session.advance() is True
    assert session.service.current_index == 3
    assert session.state is SessionState.ACTIVE

    assert session.advance() is False

    assert session.state is SessionState.REVIEWING
    assert session.service.current_index == 3
    assert ticker.active_count == 0
    assert len(session.history()) == 1


def test_double_interrupt_records_one_summary() -> None:
    session, _ = _session()
    session.start()
    session.answer("c0", True)
    first = session.interrupt()
    second = session.interrupt()
    assert first is not None
    assert second is None
    assert session.history() == [first]


def test_end_after_interrupt_is_a_no_op() -> None:
    session, _ = _session()
    session.start()
    session.interrupt()
    assert session.end() is None
    assert session.advance() is True
    assert len(session.history()) == 1


def test_end_when_idle_records_nothing() -> None:
    session, _ = _session()
    assert session.end() is None
    assert session.interrupt() is None
    assert session.history() == []


def test_restart_from_reviewing() -> None:
    session, ticker = _session()
    session.start()
    session.answer("c0", False)
    ticker.tick(10)
    session.end()

    session.restart()

    assert session.state is SessionState.ACTIVE
    assert session.elapsed == 0
    assert session.service.card_statuses == {}
    assert session.last_summary is None
    assert ticker.active_count == 1
    ticker.tick(2)
    summary = session.end()
    assert summary is not None
    assert summary.time_spent == 2
    assert summary.cards_studied == 0
    assert summary.accuracy == 0
    assert len(session.history()) == 2


def test_start_while_active_keeps_running_session() -> None:
    session, ticker = _session()
    session.start()
    session.answer("c0", True)
    ticker.tick(4)
    session.start()
    assert session.elapsed == 4
    assert session.service.card_status("c0") is CardStatus.CORRECT
    assert ticker.active_count == 1


def test_close_abandons_without_summary() -> None:
    session, ticker = _session()
    session.start()
    session.answer("c0", True)
    ticker.tick(8)

    session.close()

    assert session.state is SessionState.IDLE
    assert ticker.active_count == 0
    assert session.history() == []


def test_context_manager_cancels_timer() -> None:
    ticker = ManualTicker()
    with StudySession(FlashcardService(_cards(2)), StorageService(None), ticker) as session:
        session.start()
        assert ticker.active_count == 1
    assert ticker.active_count == 0


def test_fifteen_sessions_keep_last_ten() -> None:
    session, ticker = _session()
    for n in range(15):
        session.start()
        ticker.tick(n)
        session.end()
    history = session.history()
    assert [item.time_spent for item in history] == list(range(5, 15))


def test_answer_saves_progress() -> None:
    session, _ = _session()
    session.start()
    session.answer("c0", True)
    session.answer("c1", CardStatus.INCORRECT)
    assert session.storage.get_progress() == {"c0": True, "c1": False}


def test_session_without_store_still_summarizes() -> None:
    ticker = ManualTicker()
    session = StudySession(FlashcardService(_cards(2)), StorageService(None), ticker)
    session.start()
    session.answer("c0", True)
    summary = session.end()
    assert summary is not None
    assert summary.accuracy == 100
    assert session.history() == []


def test_timer_drops_ticks_from_cancelled_subscription() -> None:
    ticker = ManualTicker()
    timer = SessionTimer(ticker)
    timer.start()
    stale = ticker._subscriptions[0].callback  # noqa: SLF001
    timer.start()
    stale()
    assert timer.elapsed == 0
    ticker.tick()
    assert timer.elapsed == 1
    timer.stop()
    stale()
    assert timer.running is False
    assert timer.elapsed == 1


def test_thread_ticker_fires_and_stops() -> None:
    timer = SessionTimer(ThreadTicker(), interval=0.01)
    timer.start()
    deadline = time.monotonic() + 2.0
    while timer.elapsed < 2 and time.monotonic() < deadline:
        time.sleep(0.01)
    timer.stop()
    stopped_at = timer.elapsed
    assert stopped_at >= 2
    time.sleep(0.05)
    assert timer.elapsed == stopped_at


def test_thread_subscription_cancel_joins_thread() -> None:
    ticks: list[int] = []
    subscription = ThreadTicker().schedule(lambda: ticks.append(1), 0.01)
    assert subscription.alive
    subscription.cancel()
    assert not subscription.alive
    settled = len(ticks)
    time.sleep(0.05)
    assert len(ticks) == settled


def test_thread_subscription_cancel_from_its_own_tick() -> None:
    subscriptions: list[Any] = []

    def cancel_self() -> None:
        if subscriptions:
            subscriptions[0].cancel()

    subscriptions.append(ThreadTicker().schedule(cancel_self, 0.01))
    deadline = time.monotonic() + 2.0
    while subscriptions[0].alive and time.monotonic() < deadline:
        time.sleep(0.01)
    assert not subscriptions[0].alive


def test_session_end_with_thread_ticker_stops_ticking() -> None:
    session = StudySession(FlashcardService(_cards(3)), StorageService(MemoryBackend()), ThreadTicker(), tick_interval=0.01)
    session.start()
    deadline = time.monotonic() + 2.0
    while session.elapsed < 2 and time.monotonic() < deadline:
        time.sleep(0.01)
    summary = session.end()
    assert summary is not None
    assert summary.time_spent == session.elapsed
    time.sleep(0.05)
    assert session.elapsed == summary.time_spent
