"""Key-value persistence with expiry support and bounded session history."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Protocol

from .models import SessionSummary

log = logging.getLogger(__name__)

SCHEMA_VERSION = 1
HISTORY_KEY = "sessionHistory"
PROGRESS_KEY = "studyProgress"
HISTORY_LIMIT = 10


class StorageError(RuntimeError):
    """Raised by a backend when the underlying store cannot be used."""


class StorageBackend(Protocol):
    """String-keyed blob store."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def clear(self) -> None: ...

    def close(self) -> None: ...


class MemoryBackend:
    """Process-local backend, lost on exit."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()

    def keys(self) -> list[str]:
        """Return stored keys in insertion order."""
        return list(self._items)

    def close(self) -> None:
        pass


class SqliteBackend:
    """SQLite-backed durable store."""

    def __init__(self, db_path: Path | str) -> None:
        """Open the database and apply schema migrations.

        Raises:
            StorageError: the file cannot be created or is not a usable database.
        """
        try:
            if isinstance(db_path, Path):
                db_path.parent.mkdir(parents=True, exist_ok=True)
                target = str(db_path)
            else:
                target = db_path
            self._conn = sqlite3.connect(target, check_same_thread=False)
        except (OSError, sqlite3.Error) as exc:
            raise StorageError(f"Cannot open {db_path}: {exc}") from exc
        self._conn.row_factory = sqlite3.Row
        try:
            self._apply_migrations()
        except sqlite3.Error as exc:
            self._conn.close()
            raise StorageError(f"Cannot use {db_path}: {exc}") from exc
        except StorageError:
            self._conn.close()
            raise

    def _apply_migrations(self) -> None:
        """Apply forward-only schema migrations to latest version."""
        current = int(self._conn.execute("PRAGMA user_version").fetchone()[0])
        if current > SCHEMA_VERSION:
            raise StorageError(f"Database schema version {current} is newer than supported {SCHEMA_VERSION}.")

        for version in range(current + 1, SCHEMA_VERSION + 1):
            if version == 1:
                self._migrate_to_v1()
            with self._conn:
                self._conn.execute(f"PRAGMA user_version = {version}")

    def _migrate_to_v1(self) -> None:
        """Create the key-value table."""
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """)

    def get_item(self, key: str) -> str | None:
        try:
            row = self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc
        if row is None:
            return None
        return str(row["value"])

    def set_item(self, key: str, value: str) -> None:
        now = datetime.now(UTC).isoformat()
        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, value, now),
                )
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc

    def remove_item(self, key: str) -> None:
        try:
            with self._conn:
                self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc

    def clear(self) -> None:
        try:
            with self._conn:
                self._conn.execute("DELETE FROM kv_store")
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc

    def close(self) -> None:
        """Close db connection."""
        self._conn.close()

    def __del__(self) -> None:  # pragma: no cover
        """Best-effort connection cleanup."""
        try:
            self.close()
        except Exception:
            pass


def _utc_now() -> datetime:
    return datetime.now(UTC)


class StorageService:
    """JSON values over a backend that may be missing.

    With ``backend=None`` every read returns ``None`` and every write is
    dropped, matching a headless run with no durable store. Backend failures
    and undecodable values degrade the same way and are logged.
    """

    def __init__(self, backend: StorageBackend | None, clock: Callable[[], datetime] = _utc_now) -> None:
        self._backend = backend
        self._clock = clock
        self._session: dict[str, str] = {}

    @property
    def available(self) -> bool:
        """Whether a durable backend is attached."""
        return self._backend is not None

    def get(self, key: str) -> Any | None:
        """Return the decoded value for key, or None when absent or unreadable."""
        raw = self._read(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            log.warning("Discarding unreadable value for %r: %s", key, exc)
            return None

    def set(self, key: str, value: Any) -> None:
        """Store value as JSON under key."""
        self._write(key, json.dumps(value))

    def remove(self, key: str) -> None:
        if self._backend is None:
            return
        try:
            self._backend.remove_item(key)
        except StorageError as exc:
            log.warning("Could not remove %r: %s", key, exc)

    def clear(self) -> None:
        if self._backend is None:
            return
        try:
            self._backend.clear()
        except StorageError as exc:
            log.warning("Could not clear storage: %s", exc)

    def set_with_expiry(self, key: str, value: Any, ttl: timedelta) -> None:
        """Store value with an absolute expiry of now + ttl."""
        expiry = self._now_ms() + int(ttl.total_seconds() * 1000)
        self.set(key, {"value": value, "expiry": expiry})

    def get_with_expiry(self, key: str) -> Any | None:
        """Return a value stored by `set_with_expiry`, deleting it once expired."""
        item = self.get(key)
        if not isinstance(item, dict) or "value" not in item:
            return None
        expiry = item.get("expiry")
        if not isinstance(expiry, int | float) or isinstance(expiry, bool):
            return None
        if self._now_ms() > expiry:
            self.remove(key)
            return None
        return item["value"]

    def get_session(self, key: str) -> Any | None:
        """Read from process-lifetime scratch storage."""
        raw = self._session.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set_session(self, key: str, value: Any) -> None:
        """Write to process-lifetime scratch storage."""
        self._session[key] = json.dumps(value)

    def save_progress(self, card_id: str, is_correct: bool) -> None:
        """Remember the latest outcome for a card across runs."""
        progress = self.get(PROGRESS_KEY)
        if not isinstance(progress, dict):
            progress = {}
        progress[card_id] = is_correct
        self.set(PROGRESS_KEY, progress)

    def get_progress(self) -> dict[str, bool]:
        """Return the latest stored outcome per card id."""
        progress = self.get(PROGRESS_KEY)
        if not isinstance(progress, dict):
            return {}
        return {str(key): bool(value) for key, value in progress.items()}

    def save_session_stats(self, summary: SessionSummary) -> None:
        """Append a session summary, keeping only the most recent entries."""
        history = self.get(HISTORY_KEY)
        if not isinstance(history, list):
            history = []
        history.append(summary.to_dict())
        while len(history) > HISTORY_LIMIT:
            history.pop(0)
        self.set(HISTORY_KEY, history)

    def get_session_history(self) -> list[SessionSummary]:
        """Return stored summaries, oldest first."""
        history = self.get(HISTORY_KEY)
        if not isinstance(history, list):
            return []
        summaries: list[SessionSummary] = []
        for item in history:
            summary = SessionSummary.from_dict(item)
            if summary is not None:
                summaries.append(summary)
        return summaries

    def close(self) -> None:
        """Close the backend."""
        if self._backend is not None:
            self._backend.close()

    def _read(self, key: str) -> str | None:
        if self._backend is None:
            return None
        try:
            return self._backend.get_item(key)
        except StorageError as exc:
            log.warning("Could not read %r: %s", key, exc)
            return None

    def _write(self, key: str, raw: str) -> None:
        if self._backend is None:
            return
        try:
            self._backend.set_item(key, raw)
        except StorageError as exc:
            log.warning("Could not write %r: %s", key, exc)

    def _now_ms(self) -> int:
        return int(self._clock().timestamp() * 1000)
