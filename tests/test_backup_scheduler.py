"""Tests for the backup scheduler core."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

import pytest

from conftest import FakeBackend
from retainer.exceptions import BackupValidationError, ConfigurationError
from retainer.services.backup_scheduler import BackupScheduler
from retainer.services.backup_types import Backup, CallableBackend

MakeScheduler = Callable[..., BackupScheduler]


def _backups(*pairs: tuple[str, float]) -> list[Backup]:
    return [Backup(backup_id, created_at) for backup_id, created_at in pairs]


class BlockingBackend(FakeBackend):
    """Backend whose list() blocks until released."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def list(self, limit: int) -> object:
        self.entered.set()
        assert self.release.wait(5), "test never released the backend"
        return super().list(limit)


# ── Construction ────────────────────────────────────────────────────


class TestConstruction:
    @pytest.mark.parametrize("interval", [0, -1, -0.5, "60", None, True, float("nan"), float("inf")])
    def test_invalid_interval(self, fake_backend: FakeBackend, interval: object) -> None:
        with pytest.raises(ConfigurationError, match="interval"):
            BackupScheduler(fake_backend, interval=interval, limit=3)  # type: ignore[arg-type]

    @pytest.mark.parametrize("limit", [0, -2, 1.5, "3", None, True])
    def test_invalid_limit(self, fake_backend: FakeBackend, limit: object) -> None:
        with pytest.raises(ConfigurationError, match="limit"):
            BackupScheduler(fake_backend, interval=60, limit=limit)  # type: ignore[arg-type]

    @pytest.mark.parametrize("missing", ["list", "create", "delete"])
    def test_missing_backend_operation(self, missing: str) -> None:
        operations = {
            "list": lambda limit: False,
            "create": lambda: None,
            "delete": lambda backups: None,
        }
        del operations[missing]
        backend = type("PartialBackend", (), {k: staticmethod(v) for k, v in operations.items()})()
        with pytest.raises(ConfigurationError, match=missing):
            BackupScheduler(backend, interval=60, limit=3)

    def test_non_callable_operation(self) -> None:
        backend = type("Backend", (), {"list": [], "create": lambda self: None, "delete": lambda self, b: None})()
        with pytest.raises(ConfigurationError, match="list"):
            BackupScheduler(backend, interval=60, limit=3)

    def test_configuration_error_is_value_error(self, fake_backend: FakeBackend) -> None:
        with pytest.raises(ValueError):
            BackupScheduler(fake_backend, interval=60, limit=0)

    def test_properties(self, fake_backend: FakeBackend, make_scheduler: MakeScheduler) -> None:
        scheduler = make_scheduler(fake_backend, interval=30, limit=5)
        assert scheduler.interval == 30
        assert scheduler.limit == 5
        assert scheduler.backend is fake_backend
        assert scheduler.destroyed is False

    def test_accepts_callable_backend(self, make_scheduler: MakeScheduler) -> None:
        created: list[str] = []
        backend = CallableBackend(
            list_fn=lambda limit: False,
            create_fn=lambda: created.append("x"),
            delete_fn=lambda backups: None,
        )
        scheduler = make_scheduler(backend)
        assert scheduler.cycle() is True
        assert created == ["x"]


# ── Retention ───────────────────────────────────────────────────────


class TestRetention:
    def test_deletes_oldest_overflow(self, fake_backend: FakeBackend, make_scheduler: MakeScheduler) -> None:
        a, b, c, d = _backups(("A", 100), ("B", 200), ("C", 300), ("D", 400))
        fake_backend.backups = [c, a, d, b]
        scheduler = make_scheduler(fake_backend, limit=3)

        assert scheduler.cycle() is True

        assert fake_backend.operations() == ["list", "create", "delete"]
        assert fake_backend.deleted == [[a, b]]
        assert len(fake_backend.created) == 1
        assert fake_backend.created[0] not in fake_backend.deleted[0]

    def test_list_receives_limit(self, fake_backend: FakeBackend, make_scheduler: MakeScheduler) -> None:
        scheduler = make_scheduler(fake_backend, limit=7)
        scheduler.cycle()
        assert fake_backend.calls[0] == ("list", 7)

    @pytest.mark.parametrize(
        "count,limit,expected",
        [(0, 1, 0), (1, 1, 1), (2, 3, 0), (3, 3, 1), (10, 3, 8), (5, 10, 0)],
    )
    def test_overflow_count(
        self,
        fake_backend: FakeBackend,
        make_scheduler: MakeScheduler,
        count: int,
        limit: int,
        expected: int,
    ) -> None:
        existing = [Backup(f"b{i}", 1000 + i) for i in range(count)]
        fake_backend.backups = list(reversed(existing))
        scheduler = make_scheduler(fake_backend, limit=limit)

        assert scheduler.cycle() is True

        if expected:
            assert fake_backend.deleted == [existing[:expected]]
        else:
            assert fake_backend.deleted == []
            assert "delete" not in fake_backend.operations()

    def test_tuple_listing_accepted(self, fake_backend: FakeBackend, make_scheduler: MakeScheduler) -> None:
        fake_backend.list_result = tuple(_backups(("A", 1), ("B", 2)))
        scheduler = make_scheduler(fake_backend, limit=2)
        assert scheduler.cycle() is True
        assert [b.id for b in fake_backend.deleted[0]] == ["A"]

    def test_equal_timestamps_keep_listing_order(
        self, fake_backend: FakeBackend, make_scheduler: MakeScheduler
    ) -> None:
        fake_backend.backups = _backups(("Z", 50), ("Y", 50), ("X", 50), ("W", 10))
        scheduler = make_scheduler(fake_backend, limit=2)

        for _ in range(3):
            fake_backend.deleted.clear()
            assert scheduler.cycle() is True
            assert [b.id for b in fake_backend.deleted[0]] == ["W", "Z", "Y"]

    def test_listing_is_not_mutated(self, fake_backend: FakeBackend, make_scheduler: MakeScheduler) -> None:
        listing = _backups(("B", 2), ("A", 1))
        fake_backend.list_result = listing
        make_scheduler(fake_backend, limit=1).cycle()
        assert [b.id for b in listing] == ["B", "A"]


# ── Short-circuit ───────────────────────────────────────────────────


class TestShortCircuit:
    def test_false_skips_deletion(self, fake_backend: FakeBackend, make_scheduler: MakeScheduler) -> None:
        fake_backend.list_result = False
        scheduler = make_scheduler(fake_backend, limit=5)

        assert scheduler.cycle() is True

        assert fake_backend.operations() == ["list", "create"]
        assert fake_backend.deleted == []

    def test_false_with_create_returning_none(self, make_scheduler: MakeScheduler) -> None:
        calls: list[str] = []
        backend = CallableBackend(
            list_fn=lambda limit: False,
            create_fn=lambda: calls.append("create"),
            delete_fn=lambda backups: calls.append("delete"),
        )
        assert make_scheduler(backend).cycle() is True
        assert calls == ["create"]


# ── Error isolation ─────────────────────────────────────────────────


class TestErrors:
    def test_create_failure_reported_once(self, fake_backend: FakeBackend, make_scheduler: MakeScheduler) -> None:
        fake_backend.backups = _backups(("A", 1), ("B", 2), ("C", 3))
        error = RuntimeError("disk full")
        fake_backend.create_error = error
        scheduler = make_scheduler(fake_backend, limit=2)
        received: list[BaseException] = []
        scheduler.on_error(received.append)

        assert scheduler.cycle() is False

        assert received == [error]
        assert "delete" not in fake_backend.operations()

        # The guard is released, so the next cycle runs normally
        fake_backend.create_error = None
        assert scheduler.cycle() is True
        assert received == [error]
        assert len(fake_backend.deleted) == 1

    def test_list_failure(self, fake_backend: FakeBackend, make_scheduler: MakeScheduler) -> None:
        fake_backend.list_error = OSError("permission denied")
        scheduler = make_scheduler(fake_backend)
        received: list[BaseException] = []
        scheduler.on_error(received.append)

        assert scheduler.cycle() is False
        assert received == [fake_backend.list_error]
        assert fake_backend.operations() == ["list"]

    def test_delete_failure(self, fake_backend: FakeBackend, make_scheduler: MakeScheduler) -> None:
        fake_backend.backups = _backups(("A", 1))
        fake_backend.delete_error = RuntimeError("delete failed")
        scheduler = make_scheduler(fake_backend, limit=1)
        received: list[BaseException] = []
        scheduler.on_error(received.append)

        assert scheduler.cycle() is False
        assert received == [fake_backend.delete_error]

    @pytest.mark.parametrize("result", [None, True, "backups", {"A": 1}, 42])
    def test_malformed_listing(
        self, fake_backend: FakeBackend, make_scheduler: MakeScheduler, result: object
    ) -> None:
        backend = CallableBackend(
            list_fn=lambda limit: result,  # type: ignore[arg-type,return-value]
            create_fn=fake_backend.create,
            delete_fn=fake_backend.delete,
        )
        scheduler = make_scheduler(backend)
        received: list[BaseException] = []
        scheduler.on_error(received.append)

        assert scheduler.cycle() is False
        assert len(received) == 1
        assert isinstance(received[0], BackupValidationError)
        assert fake_backend.calls == []

    def test_listing_with_non_backup_item(
        self, fake_backend: FakeBackend, make_scheduler: MakeScheduler
    ) -> None:
        fake_backend.list_result = [Backup("A", 1), {"id": "B", "created_at": 2}]
        scheduler = make_scheduler(fake_backend)
        received: list[BaseException] = []
        scheduler.on_error(received.append)

        assert scheduler.cycle() is False
        assert isinstance(received[0], BackupValidationError)
        assert fake_backend.operations() == ["list"]

    def test_malformed_create_result(self, fake_backend: FakeBackend, make_scheduler: MakeScheduler) -> None:
        fake_backend.backups = _backups(("A", 1), ("B", 2))
        fake_backend.create_result = "backup-3"
        scheduler = make_scheduler(fake_backend, limit=1)
        received: list[BaseException] = []
        scheduler.on_error(received.append)

        assert scheduler.cycle() is False
        assert isinstance(received[0], BackupValidationError)
        assert "delete" not in fake_backend.operations()

    def test_failing_listener_does_not_block_others(
        self, fake_backend: FakeBackend, make_scheduler: MakeScheduler
    ) -> None:
        fake_backend.create_error = RuntimeError("boom")
        scheduler = make_scheduler(fake_backend)
        received: list[BaseException] = []

        def broken(error: BaseException) -> None:
            raise ValueError("listener bug")

        scheduler.on_error(broken)
        scheduler.on_error(received.append)

        assert scheduler.cycle() is False
        assert received == [fake_backend.create_error]

    def test_listener_registered_once_and_removable(
        self, fake_backend: FakeBackend, make_scheduler: MakeScheduler
    ) -> None:
        fake_backend.create_error = RuntimeError("boom")
        scheduler = make_scheduler(fake_backend)
        received: list[BaseException] = []
        scheduler.on_error(received.append)
        scheduler.on_error(received.append)

        scheduler.cycle()
        assert len(received) == 1

        scheduler.remove_error_listener(received.append)
        scheduler.cycle()
        assert len(received) == 1

    def test_errors_without_listeners_are_logged(
        self,
        fake_backend: FakeBackend,
        make_scheduler: MakeScheduler,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        fake_backend.create_error = RuntimeError("nobody listening")
        scheduler = make_scheduler(fake_backend)

        with caplog.at_level("ERROR", logger="retainer"):
            assert scheduler.cycle() is False

        assert "nobody listening" in caplog.text


# ── Single flight ───────────────────────────────────────────────────


class TestSingleFlight:
    def test_overlapping_cycle_returns_false(self, make_scheduler: MakeScheduler) -> None:
        backend = BlockingBackend()
        scheduler = make_scheduler(backend)
        results: list[bool] = []
        worker = threading.Thread(target=lambda: results.append(scheduler.cycle()))
        worker.start()

        assert backend.entered.wait(5)
        assert scheduler.cycle() is False
        assert backend.operations() == []

        backend.release.set()
        worker.join(5)
        assert results == [True]
        assert backend.operations() == ["list", "create"]

    def test_concurrent_manual_cycles(self, make_scheduler: MakeScheduler) -> None:
        backend = BlockingBackend()
        scheduler = make_scheduler(backend)
        results: list[bool] = []
        lock = threading.Lock()

        def run() -> None:
            outcome = scheduler.cycle()
            with lock:
                results.append(outcome)

        workers = [threading.Thread(target=run) for _ in range(8)]
        for worker in workers:
            worker.start()
        assert backend.entered.wait(5)
        time.sleep(0.05)
        backend.release.set()
        for worker in workers:
            worker.join(5)

        assert results.count(True) >= 1
        assert len(backend.created) == results.count(True)
        assert backend.operations().count("list") == results.count(True)


# ── Timer & teardown ────────────────────────────────────────────────


class TestTimer:
    def test_first_cycle_waits_for_interval(
        self, fake_backend: FakeBackend, make_scheduler: MakeScheduler
    ) -> None:
        make_scheduler(fake_backend, interval=1.0)
        time.sleep(0.1)
        assert fake_backend.calls == []

    def test_timer_runs_cycles(self, fake_backend: FakeBackend, make_scheduler: MakeScheduler) -> None:
        fake_backend.list_result = False
        make_scheduler(fake_backend, interval=0.05)
        assert fake_backend.cycle_done.wait(5)
        assert fake_backend.operations()[:2] == ["list", "create"]

    def test_destroy_stops_future_cycles(self, fake_backend: FakeBackend) -> None:
        scheduler = BackupScheduler(fake_backend, interval=0.02, limit=3)
        scheduler.destroy()
        assert scheduler.join(timeout=2.0)

        time.sleep(0.15)
        assert fake_backend.calls == []
        assert scheduler.destroyed is True

    def test_destroy_after_cycles_started(self, fake_backend: FakeBackend) -> None:
        fake_backend.list_result = False
        scheduler = BackupScheduler(fake_backend, interval=0.02, limit=3)
        assert fake_backend.cycle_done.wait(5)

        scheduler.destroy()
        assert scheduler.join(timeout=2.0)
        count = len(fake_backend.calls)
        time.sleep(0.15)
        assert len(fake_backend.calls) == count

    def test_destroy_is_idempotent(self, fake_backend: FakeBackend) -> None:
        scheduler = BackupScheduler(fake_backend, interval=60, limit=3)
        scheduler.destroy()
        scheduler.destroy()
        assert scheduler.join(timeout=2.0)

    def test_destroy_lets_in_flight_cycle_finish(self, make_scheduler: MakeScheduler) -> None:
        backend = BlockingBackend()
        scheduler = make_scheduler(backend)
        results: list[bool] = []
        worker = threading.Thread(target=lambda: results.append(scheduler.cycle()))
        worker.start()
        assert backend.entered.wait(5)

        scheduler.destroy()
        backend.release.set()
        worker.join(5)

        assert results == [True]
        assert len(backend.created) == 1

    def test_manual_cycle_after_destroy(self, fake_backend: FakeBackend) -> None:
        scheduler = BackupScheduler(fake_backend, interval=60, limit=3)
        scheduler.destroy()
        assert scheduler.cycle() is True

    def test_context_manager_destroys(self, fake_backend: FakeBackend) -> None:
        with BackupScheduler(fake_backend, interval=60, limit=3) as scheduler:
            assert scheduler.destroyed is False
        assert scheduler.destroyed is True
        assert scheduler.join(timeout=2.0)
