"""Unit tests for TaskRegistry."""

import threading

import pytest

from bandcrawl.models import TaskKind, TaskStatus
from bandcrawl.task_registry import TaskRegistry


@pytest.fixture
def registry():
    return TaskRegistry()


class TestCreateAndGet:
    """Tests for task creation and lookup."""

    def test_create_returns_pending_task(self, registry):
        task_id = registry.create(TaskKind.POST_CRAWL, "queued")
        task = registry.get(task_id)

        assert task.task_id == task_id
        assert task.kind is TaskKind.POST_CRAWL
        assert task.status is TaskStatus.PENDING
        assert task.message == "queued"
        assert task.progress == 0
        assert task.error is None

    def test_ids_are_unique(self, registry):
        ids = {registry.create(TaskKind.COMMENT_CRAWL) for _ in range(50)}
        assert len(ids) == 50

    def test_id_factory_collision_is_retried(self):
        ids = iter(["a", "a", "b"])
        registry = TaskRegistry(id_factory=lambda: next(ids))

        assert registry.create(TaskKind.POST_CRAWL) == "a"
        assert registry.create(TaskKind.POST_CRAWL) == "b"

    def test_get_unknown_returns_none(self, registry):
        assert registry.get("missing") is None

    def test_get_returns_snapshot(self, registry):
        task_id = registry.create(TaskKind.POST_CRAWL)
        snapshot = registry.get(task_id)
        snapshot.progress = 99
        snapshot.extra["x"] = 1

        fresh = registry.get(task_id)
        assert fresh.progress == 0
        assert fresh.extra == {}


class TestUpdate:
    """Tests for the update rules."""

    def test_update_unknown_is_noop(self, registry):
        assert registry.update("missing", status=TaskStatus.PROCESSING, progress=10) is None
        assert len(registry) == 0

    def test_update_merges_fields(self, registry):
        task_id = registry.create(TaskKind.POST_CRAWL)
        registry.update(task_id, status=TaskStatus.PROCESSING, message="scraping", progress=50)
        registry.update(task_id, extra={"state": "Scraping"})
        registry.update(task_id, extra={"retries": []})

        task = registry.get(task_id)
        assert task.status is TaskStatus.PROCESSING
        assert task.message == "scraping"
        assert task.progress == 50
        assert task.extra == {"state": "Scraping", "retries": []}

    def test_progress_never_decreases(self, registry):
        task_id = registry.create(TaskKind.POST_CRAWL)
        observed = []
        for value in [10, 30, 20, 50, 0, 70, 65, 90]:
            snapshot = registry.update(task_id, status=TaskStatus.PROCESSING, progress=value)
            observed.append(snapshot.progress)

        assert observed == sorted(observed)
        assert observed[-1] == 90

    def test_progress_is_clamped(self, registry):
        task_id = registry.create(TaskKind.POST_CRAWL)
        registry.update(task_id, progress=250)
        assert registry.get(task_id).progress == 100

    def test_status_does_not_move_backwards(self, registry):
        task_id = registry.create(TaskKind.POST_CRAWL)
        registry.update(task_id, status=TaskStatus.PROCESSING)
        registry.update(task_id, status=TaskStatus.PENDING)

        assert registry.get(task_id).status is TaskStatus.PROCESSING

    def test_completed_forces_full_progress(self, registry):
        task_id = registry.create(TaskKind.POST_CRAWL)
        registry.update(task_id, status=TaskStatus.PROCESSING, progress=40)
        registry.update(task_id, status=TaskStatus.COMPLETED)

        assert registry.get(task_id).progress == 100

    @pytest.mark.parametrize("terminal", [TaskStatus.COMPLETED, TaskStatus.FAILED])
    def test_terminal_task_is_frozen(self, registry, terminal):
        task_id = registry.create(TaskKind.POST_CRAWL)
        registry.update(task_id, status=TaskStatus.PROCESSING, progress=30)
        registry.update(task_id, status=terminal, message="done", error="x" if terminal is TaskStatus.FAILED else None)
        before = registry.get(task_id)

        result = registry.update(
            task_id,
            status=TaskStatus.PROCESSING,
            message="late",
            progress=100,
            error="late",
            extra={"late": True},
        )

        after = registry.get(task_id)
        assert result is None
        assert after.status is before.status
        assert after.message == before.message
        assert after.progress == before.progress
        assert after.error == before.error
        assert after.extra == before.extra
        assert after.updated_at == before.updated_at

    def test_result_refs_accumulate(self, registry):
        task_id = registry.create(TaskKind.POST_CRAWL)
        registry.update(task_id, result_refs=["1/2"])
        registry.update(task_id, result_refs=["1/3"])

        assert registry.get(task_id).result_refs == ["1/2", "1/3"]


class TestListeners:
    """Tests for change listeners."""

    def test_listener_receives_snapshots(self, registry):
        seen = []
        registry.add_listener(lambda task: seen.append((task.status, task.progress)))

        task_id = registry.create(TaskKind.POST_CRAWL)
        registry.update(task_id, status=TaskStatus.PROCESSING, progress=10)

        assert seen == [(TaskStatus.PENDING, 0), (TaskStatus.PROCESSING, 10)]

    def test_listener_not_called_for_ignored_updates(self, registry):
        seen = []
        task_id = registry.create(TaskKind.POST_CRAWL)
        registry.update(task_id, status=TaskStatus.FAILED, error="boom")
        registry.add_listener(seen.append)

        registry.update(task_id, progress=50)
        registry.update("missing", progress=50)

        assert seen == []

    def test_listener_errors_do_not_propagate(self, registry):
        def broken(task):
            raise RuntimeError("listener bug")

        registry.add_listener(broken)
        task_id = registry.create(TaskKind.POST_CRAWL)
        snapshot = registry.update(task_id, progress=20)

        assert snapshot.progress == 20


class TestConcurrency:
    """Concurrent readers and a single writer."""

    def test_reads_during_updates_are_monotonic(self, registry):
        task_id = registry.create(TaskKind.POST_CRAWL)
        registry.update(task_id, status=TaskStatus.PROCESSING)
        readings = []
        done = threading.Event()

        def reader():
            while not done.is_set():
                readings.append(registry.get(task_id).progress)

        threads = [threading.Thread(target=reader) for _ in range(4)]
        for thread in threads:
            thread.start()
        for value in range(0, 101):
            registry.update(task_id, progress=value)
        done.set()
        for thread in threads:
            thread.join()

        assert registry.get(task_id).progress == 100
        assert all(0 <= value <= 100 for value in readings)
