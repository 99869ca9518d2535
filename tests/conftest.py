"""Shared pytest fixtures for retainer tests."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from retainer.config.constants import ENV_VAR_DEFINITIONS
from retainer.services.backup_scheduler import BackupScheduler
from retainer.services.backup_types import Backup


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point RETAINER_HOME at a temp dir and clear other RETAINER_* variables."""
    for name in ENV_VAR_DEFINITIONS:
        monkeypatch.delenv(name, raising=False)
    home = tmp_path / "retainer-home"
    monkeypatch.setenv("RETAINER_HOME", str(home))
    yield home

    # CLI tests attach handlers to the package logger
    package_logger = logging.getLogger("retainer")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()


class FakeBackend:
    """In-memory backend that records every call it receives."""

    def __init__(self, backups: list[Backup] | None = None) -> None:
        self.backups = list(backups or [])
        self.list_result: object = None
        self.create_result: object = None
        self.list_error: Exception | None = None
        self.create_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.calls: list[tuple] = []
        self.created: list[Backup] = []
        self.deleted: list[list[Backup]] = []
        self.cycle_done = threading.Event()
        self._counter = 0

    def list(self, limit: int) -> object:
        self.calls.append(("list", limit))
        if self.list_error is not None:
            raise self.list_error
        if self.list_result is not None:
            return self.list_result
        return list(self.backups)

    def create(self) -> object:
        self.calls.append(("create",))
        self.cycle_done.set()
        if self.create_error is not None:
            raise self.create_error
        if self.create_result is not None:
            return self.create_result
        self._counter += 1
        backup = Backup(f"new-{self._counter}", 1_000_000 + self._counter)
        self.created.append(backup)
        return backup

    def delete(self, backups: list[Backup]) -> None:
        self.calls.append(("delete", list(backups)))
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append(list(backups))

    def operations(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def make_scheduler() -> Iterator[Callable[..., BackupScheduler]]:
    """Build schedulers that are destroyed when the test ends."""
    created: list[BackupScheduler] = []

    def factory(backend: object, interval: float = 3600, limit: int = 3) -> BackupScheduler:
        scheduler = BackupScheduler(backend, interval=interval, limit=limit)  # type: ignore[arg-type]
        created.append(scheduler)
        return scheduler

    yield factory

    for scheduler in created:
        scheduler.destroy()
        scheduler.join(timeout=2.0)
