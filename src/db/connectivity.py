"""
Database connectivity monitor.

Tracks whether the clinic database is reachable, tells registered listeners
when that changes, and reconnects with exponential backoff (1s doubling, 30s
cap, 5 attempts by default) through ``tenacity``.  The executor reports
connection failures here, which starts a background reconnect;
``GET /health`` reads the current status.
"""
from __future__ import annotations

import datetime
import threading
import time
from typing import Callable, Literal, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.core.config import get_settings
from src.core.logging import get_logger
from src.db.connection import get_engine, reset_engine

logger = get_logger(__name__)

ConnectionStatus = Literal["unknown", "connected", "disconnected", "reconnecting"]
StatusListener = Callable[[str, Optional[str]], None]


class ConnectionMonitor:
    def __init__(
        self,
        engine_factory: Callable[[], Engine] = get_engine,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        max_delay: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        settings = get_settings()
        self._engine_factory = engine_factory
        self.max_attempts = max_attempts if max_attempts is not None else settings.reconnect_max_attempts
        self.base_delay = base_delay if base_delay is not None else settings.reconnect_base_delay
        self.max_delay = max_delay if max_delay is not None else settings.reconnect_max_delay
        self._sleep = sleep

        self.status: ConnectionStatus = "unknown"
        self.last_error: str | None = None
        self.last_checked: datetime.datetime | None = None
        self._listeners: list[StatusListener] = []
        self._reconnect_lock = threading.Lock()
        self._reconnect_thread: threading.Thread | None = None

    # ── Listeners ────────────────────────────────────

    def add_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _set_status(self, status: ConnectionStatus, error: str | None = None) -> None:
        self.last_error = error
        if status == self.status:
            return
        logger.info("Database status %s -> %s", self.status, status)
        self.status = status
        for listener in list(self._listeners):
            try:
                listener(status, error)
            except Exception:
                logger.exception("Connection status listener failed")

    # ── Probing ──────────────────────────────────────

    def _probe(self) -> None:
        engine = self._engine_factory()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1 as connected")).scalar()

    def check(self) -> bool:
        """Run one connectivity probe and update the status."""
        self.last_checked = datetime.datetime.now(datetime.timezone.utc)
        try:
            self._probe()
        except SQLAlchemyError as exc:
            logger.warning("Database check failed: %s", exc)
            self._set_status("disconnected", str(exc))
            return False
        self._set_status("connected")
        return True

    def mark_connected(self) -> None:
        self._set_status("connected")

    def mark_disconnected(self, error: str) -> None:
        self._set_status("disconnected", error)

    def reconnect(self) -> bool:
        """Retry the probe with exponential backoff until it succeeds or attempts run out."""
        self._set_status("reconnecting")
        reset_engine()

        def _before_sleep(retry_state) -> None:
            logger.warning(
                "Reconnect attempt %d/%d failed; retrying in %.1fs",
                retry_state.attempt_number, self.max_attempts, retry_state.next_action.sleep,
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay),
            retry=retry_if_exception_type(SQLAlchemyError),
            before_sleep=_before_sleep,
            sleep=self._sleep,
        )
        try:
            for attempt in retrying:
                with attempt:
                    self._probe()
        except RetryError as exc:
            error = str(exc.last_attempt.exception())
            logger.error("Reconnect gave up after %d attempts: %s", self.max_attempts, error)
            self._set_status("disconnected", error)
            return False

        self.last_checked = datetime.datetime.now(datetime.timezone.utc)
        self._set_status("connected")
        return True

    def reconnect_in_background(self) -> bool:
        """Start reconnect() on a daemon thread; False if one is already running."""
        with self._reconnect_lock:
            running = self._reconnect_thread is not None and self._reconnect_thread.is_alive()
            if running or self.status == "reconnecting":
                return False
            self._reconnect_thread = threading.Thread(target=self.reconnect, name="db-reconnect", daemon=True)
            self._reconnect_thread.start()
        return True

    def snapshot(self) -> dict:
        return {
            "status": self.status,
            "last_error": self.last_error,
            "last_checked": self.last_checked.isoformat() if self.last_checked else None,
        }


_monitor: ConnectionMonitor | None = None


def get_monitor() -> ConnectionMonitor:
    """Process-wide monitor (lazy-created)."""
    global _monitor
    if _monitor is None:
        _monitor = ConnectionMonitor()
    return _monitor
