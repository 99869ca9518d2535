"""Backup scheduler: periodic create-then-prune cycles against a storage backend.

Each cycle lists the existing backups, creates a new one, and deletes the
oldest backups once the retention limit is exceeded. Cycles never raise;
failures are delivered to error listeners and the next tick tries again.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from operator import attrgetter
from typing import Any

from ..config.constants import TIMER_THREAD_NAME
from ..exceptions import BackupValidationError, ConfigurationError
from .backup_types import Backup, BackupBackend

logger = logging.getLogger(__name__)

ErrorListener = Callable[[BaseException], Any]

_BACKEND_OPERATIONS = ("list", "create", "delete")


def _validate_interval(interval: Any) -> float:
    if (
        isinstance(interval, bool)
        or not isinstance(interval, (int, float))
        or not 0 < interval < math.inf
    ):
        raise ConfigurationError(
            "interval must be a positive number of seconds between backups",
            setting="interval",
            value=interval,
        )
    return float(interval)


def _validate_limit(limit: Any) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ConfigurationError(
            "limit must be a positive integer number of backups to keep",
            setting="limit",
            value=limit,
        )
    return limit


def _validate_backend(backend: Any) -> BackupBackend:
    for operation in _BACKEND_OPERATIONS:
        if not callable(getattr(backend, operation, None)):
            raise ConfigurationError(
                f"backend must provide a callable {operation!r} operation",
                setting="backend",
                backend=type(backend).__name__,
            )
    return backend


class BackupScheduler:
    """Runs backup cycles on a fixed interval and enforces a retention limit.

    The timer starts on construction and the first cycle fires after one full
    interval. At most one cycle runs at a time per scheduler, no matter whether
    it was started by the timer or by calling `cycle()` directly.

    Example:
        scheduler = BackupScheduler(DiskBackend(...), interval=3600, limit=24)
        scheduler.on_error(lambda error: alert(error))
        ...
        scheduler.destroy()
    """

    def __init__(self, backend: BackupBackend, interval: float, limit: int) -> None:
        self._interval = _validate_interval(interval)
        self._limit = _validate_limit(limit)
        self._backend = _validate_backend(backend)

        self._in_flight = threading.Lock()
        self._stopped = threading.Event()
        self._listeners_lock = threading.Lock()
        self._error_listeners: list[ErrorListener] = []

        self._timer = threading.Thread(
            target=self._run_timer, name=TIMER_THREAD_NAME, daemon=True
        )
        self._timer.start()

        logger.info(
            "Backup scheduler started (interval=%ss, limit=%d, backend=%s)",
            self._interval,
            self._limit,
            type(backend).__name__,
        )

    # ── Properties ────────────────────────────────────────────────────

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def backend(self) -> BackupBackend:
        return self._backend

    @property
    def destroyed(self) -> bool:
        """True once `destroy()` has been called."""
        return self._stopped.is_set()

    # ── Error channel ────────────────────────────────────────────────

    def on_error(self, listener: ErrorListener) -> None:
        """Register a callable that receives the error of every failed cycle."""
        with self._listeners_lock:
            if listener not in self._error_listeners:
                self._error_listeners.append(listener)

    def remove_error_listener(self, listener: ErrorListener) -> None:
        """Stop delivering errors to a previously registered listener."""
        with self._listeners_lock:
            if listener in self._error_listeners:
                self._error_listeners.remove(listener)

    def _emit_error(self, error: BaseException) -> None:
        logger.error("Backup cycle failed: %s", error, exc_info=error)
        with self._listeners_lock:
            listeners = list(self._error_listeners)
        for listener in listeners:
            try:
                listener(error)
            except Exception:
                # Keep delivering to the remaining listeners
                logger.exception("Error listener %r raised", listener)

    # ── Cycle ────────────────────────────────────────────────────────

    def cycle(self) -> bool:
        """Run a single backup cycle.

        Called by the timer every interval; call it directly to retry a failed
        cycle. Never raises: failures are reported to the error listeners.

        Returns:
            True if the cycle completed, False if it failed or another cycle
            was already in flight.
        """
        if not self._in_flight.acquire(blocking=False):
            logger.debug("Backup cycle already in flight, skipping")
            return False

        try:
            self._run_cycle(self._backend)
            return True
        except Exception as e:
            self._emit_error(e)
            return False
        finally:
            self._in_flight.release()

    def _run_cycle(self, backend: BackupBackend) -> None:
        listed = backend.list(self._limit)

        if listed is False:
            # Fewer than limit backups exist, nothing can overflow this cycle
            logger.debug("Backend reported fewer than %d backups, skipping enumeration", self._limit)
            self._check_created(backend.create())
            return

        if not isinstance(listed, (list, tuple)):
            raise BackupValidationError(
                "The backend 'list' operation must return False or a list of Backup instances",
                returned=type(listed).__name__,
            )
        for item in listed:
            if not isinstance(item, Backup):
                raise BackupValidationError(
                    "The backend 'list' operation returned a non-Backup item",
                    item=item,
                )

        # Oldest first; sorted() is stable so equal timestamps keep list order
        existing = sorted(listed, key=attrgetter("created_at"))

        created = self._check_created(backend.create())
        if created is not None:
            logger.info("Created backup %s", created.id)

        # Retention is evaluated against the snapshot taken before create()
        overflow = len(existing) - self._limit + 1
        if overflow > 0:
            expired = existing[:overflow]
            backend.delete(expired)
            logger.info(
                "Deleted %d expired backup(s): %s",
                len(expired),
                ", ".join(backup.id for backup in expired),
            )

    @staticmethod
    def _check_created(created: Any) -> Backup | None:
        if created is not None and not isinstance(created, Backup):
            raise BackupValidationError(
                "The backend 'create' operation must return None or a Backup instance",
                returned=type(created).__name__,
            )
        return created

    # ── Timer & lifecycle ────────────────────────────────────────────

    def _run_timer(self) -> None:
        next_tick = time.monotonic() + self._interval
        while not self._stopped.wait(max(0.0, next_tick - time.monotonic())):
            self.cycle()

            next_tick += self._interval
            now = time.monotonic()
            if next_tick <= now:
                missed = int((now - next_tick) // self._interval) + 1
                next_tick += missed * self._interval
                logger.warning(
                    "Backup cycle overran its interval, skipped %d tick(s)", missed
                )

    def destroy(self) -> None:
        """Stop scheduling cycles.

        A cycle already in flight is not interrupted and runs to completion.
        """
        if self._stopped.is_set():
            return
        self._stopped.set()
        logger.info("Backup scheduler destroyed")

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the timer thread to exit after `destroy()`.

        Returns:
            True if the timer thread has exited.
        """
        if threading.current_thread() is not self._timer:
            self._timer.join(timeout)
        return not self._timer.is_alive()

    def __enter__(self) -> BackupScheduler:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.destroy()

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(backend={self._backend!r}, "
            f"interval={self._interval}, limit={self._limit})"
        )
