"""Session lifecycle: start, timed study, and summary on completion."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol

from .models import CardStatus, SessionSummary
from .service import FlashcardService
from .storage import StorageService

log = logging.getLogger(__name__)

TICK_INTERVAL_SECONDS = 1.0


class Subscription(Protocol):
    def cancel(self) -> None: ...


class Ticker(Protocol):
    """Periodic clock source."""

    def schedule(self, callback: Callable[[], None], interval: float) -> Subscription: ...


class _ManualSubscription:
    def __init__(self, ticker: ManualTicker, callback: Callable[[], None]) -> None:
        self._ticker = ticker
        self.callback = callback

    def cancel(self) -> None:
        self._ticker._discard(self)  # noqa: SLF001


class ManualTicker:
    """Ticker that fires only when `tick` is called."""

    def __init__(self) -> None:
        self._subscriptions: list[_ManualSubscription] = []

    def schedule(self, callback: Callable[[], None], interval: float) -> Subscription:
        subscription = _ManualSubscription(self, callback)
        self._subscriptions.append(subscription)
        return subscription

    def tick(self, count: int = 1) -> None:
        """Fire every live subscription `count` times."""
        for _ in range(count):
            for subscription in list(self._subscriptions):
                subscription.callback()

    @property
    def active_count(self) -> int:
        return len(self._subscriptions)

    def _discard(self, subscription: _ManualSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)


class _ThreadSubscription:
    def __init__(self, callback: Callable[[], None], interval: float) -> None:
        self._callback = callback
        self._interval = interval
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name="studydeck-ticker", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stopped.wait(self._interval):
            self._callback()

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()

    def cancel(self) -> None:
        """Stop ticking and wait for the thread, unless called from a tick."""
        self._stopped.set()
        if threading.current_thread() is not self._thread:
            self._thread.join()


class ThreadTicker:
    """Wall-clock ticker backed by a daemon thread per subscription."""

    def schedule(self, callback: Callable[[], None], interval: float) -> Subscription:
        return _ThreadSubscription(callback, interval)


class SessionTimer:
    """Counts elapsed seconds while running.

    A tick that races with `stop` or a later `start` is dropped, so a stopped
    timer never changes again and a restarted one starts from zero.
    """

    def __init__(
        self,
        ticker: Ticker,
        interval: float = TICK_INTERVAL_SECONDS,
        lock: threading.RLock | None = None,
    ) -> None:
        self._ticker = ticker
        self._interval = interval
        self._lock = lock or threading.RLock()
        self._elapsed = 0
        self._subscription: Subscription | None = None
        self._token: object | None = None

    @property
    def elapsed(self) -> int:
        return self._elapsed

    @property
    def running(self) -> bool:
        return self._subscription is not None

    def start(self) -> None:
        """Zero the counter and begin ticking."""
        with self._lock:
            self.stop()
            self._elapsed = 0
            token = object()
            self._token = token
            self._subscription = self._ticker.schedule(lambda: self._tick(token), self._interval)

    def stop(self) -> None:
        with self._lock:
            subscription, self._subscription = self._subscription, None
            self._token = None
            if subscription is not None:
                subscription.cancel()

    def _tick(self, token: object) -> None:
        # A tick waiting on the lock gives up once its token is retired, so
        # stop() can join the ticker thread while holding the lock.
        while not self._lock.acquire(timeout=0.05):
            if token is not self._token:
                return
        try:
            if token is self._token:
                self._elapsed += 1
        finally:
            self._lock.release()


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    REVIEWING = "reviewing"


class StudySession:
    """Drives one study run over a `FlashcardService`.

    `end` and `interrupt` close the active period and record exactly one
    summary; calling either again before a new start does nothing. `close`
    stops the timer without recording anything.
    """

    def __init__(
        self,
        service: FlashcardService,
        storage: StorageService,
        ticker: Ticker | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
        tick_interval: float = TICK_INTERVAL_SECONDS,
    ) -> None:
        self.service = service
        self.storage = storage
        self._lock = threading.RLock()
        self._timer = SessionTimer(ticker or ThreadTicker(), tick_interval, self._lock)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._state = SessionState.IDLE
        self._last_summary: SessionSummary | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    @property
    def elapsed(self) -> int:
        """Seconds counted in the current or most recent session."""
        return self._timer.elapsed

    @property
    def last_summary(self) -> SessionSummary | None:
        return self._last_summary

    def history(self) -> list[SessionSummary]:
        return self.storage.get_session_history()

    def start(self) -> None:
        """Begin a session from the first card with a zeroed timer."""
        with self._lock:
            if self._state is SessionState.ACTIVE:
                return
            self.service.reset_study_session()
            self._timer.start()
            self._state = SessionState.ACTIVE
            self._last_summary = None
        log.info("Study session started with %d cards", self.service.total_cards)

    def restart(self) -> None:
        """Start again after reviewing a finished session."""
        self.start()

    def end(self) -> SessionSummary | None:
        """Finish the active session and store its summary."""
        with self._lock:
            if self._state is not SessionState.ACTIVE:
                return None
            self._timer.stop()
            stats = self.service.stats
            summary = SessionSummary(
                date=self._clock().isoformat(),
                cards_studied=stats.total_correct + stats.total_incorrect,
                accuracy=stats.accuracy,
                time_spent=self._timer.elapsed,
            )
            self._state = SessionState.REVIEWING
            self._last_summary = summary
            self.storage.save_session_stats(summary)
        log.info(
            "Study session ended: %d cards, %d%% accuracy, %ds",
            summary.cards_studied,
            summary.accuracy,
            summary.time_spent,
        )
        return summary

    def interrupt(self) -> SessionSummary | None:
        """Abort signal; ends an active session early."""
        return self.end()

    def advance(self) -> bool:
        """Move to the next card, ending the session when past the last one.

        Returns True when the cursor moved.
        """
        with self._lock:
            if self.service.advance():
                return True
            self.end()
            return False

    def retreat(self) -> None:
        with self._lock:
            self.service.retreat()

    def answer(self, card_id: str, outcome: CardStatus | bool) -> None:
        """Record an outcome for a card and remember it across runs."""
        with self._lock:
            self.service.record_answer(card_id, outcome)
            self.storage.save_progress(card_id, self.service.card_status(card_id) is CardStatus.CORRECT)

    def close(self) -> None:
        """Stop the timer; an unfinished session is dropped, not recorded."""
        with self._lock:
            self._timer.stop()
            if self._state is SessionState.ACTIVE:
                log.info("Study session abandoned after %ds", self._timer.elapsed)
            self._state = SessionState.IDLE

    def __enter__(self) -> StudySession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
