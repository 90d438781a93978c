"""
In-memory registry of long-running crawl tasks.

The registry is injected into the orchestrator and read by polling
clients. All access goes through one lock; readers always get a
snapshot copy, never the live record.

Usage:
    registry = TaskRegistry()
    task_id = registry.create(TaskKind.COMMENT_CRAWL, "queued")
    registry.update(task_id, status=TaskStatus.PROCESSING, progress=10)
    task = registry.get(task_id)
"""
import copy
import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from bandcrawl.models import Task, TaskKind, TaskStatus

logger = logging.getLogger(__name__)

TaskListener = Callable[[Task], None]


class TaskRegistry:
    """
    Keyed table of Task records.

    Update rules:
    - unknown task ids are ignored silently
    - status only moves forward (Pending -> Processing -> Completed/Failed)
    - progress never decreases
    - a terminal task is frozen
    """

    def __init__(self, id_factory: Optional[Callable[[], str]] = None):
        self._tasks: Dict[str, Task] = {}
        self._lock = threading.Lock()
        self._listeners: List[TaskListener] = []
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)

    def add_listener(self, listener: TaskListener) -> None:
        """Register a callback invoked with a snapshot after each effective change."""
        self._listeners.append(listener)

    def create(self, kind: TaskKind, initial_message: str = "") -> str:
        """Allocate a Pending task and return its id."""
        with self._lock:
            task_id = self._id_factory()
            while task_id in self._tasks:
                task_id = self._id_factory()
            task = Task(task_id=task_id, kind=kind, message=initial_message)
            self._tasks[task_id] = task
            snapshot = copy.deepcopy(task)

        logger.info(f"Task {task_id} created ({kind.value})")
        self._notify(snapshot)
        return task_id

    def update(
        self,
        task_id: str,
        status: Optional[TaskStatus] = None,
        message: Optional[str] = None,
        progress: Optional[int] = None,
        error: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        result_refs: Optional[Iterable[str]] = None,
    ) -> Optional[Task]:
        """
        Merge fields into an existing task.

        Args:
            task_id: Task to update
            status: New status; backward moves are ignored
            message: Human-readable progress text
            progress: 0-100; values below the current progress are ignored
            error: Short machine-usable failure reason
            extra: Keys merged into task.extra
            result_refs: References appended to task.result_refs

        Returns:
            Snapshot of the task after the update, or None if nothing changed
        """
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                logger.debug(f"Ignoring update for unknown task {task_id}")
                return None
            if task.status.is_terminal:
                logger.debug(f"Ignoring update for terminal task {task_id} ({task.status.value})")
                return None

            if status is not None and status is not task.status:
                if status.rank > task.status.rank:
                    task.status = status
                else:
                    logger.warning(
                        f"Task {task_id}: refusing status change {task.status.value} -> {status.value}"
                    )

            if progress is not None:
                progress = max(0, min(100, int(progress)))
                task.progress = max(task.progress, progress)
            if task.status is TaskStatus.COMPLETED:
                task.progress = 100

            if message is not None:
                task.message = message
            if error is not None:
                task.error = error
            if extra:
                task.extra.update(copy.deepcopy(extra))
            if result_refs:
                task.result_refs.extend(result_refs)

            task.updated_at = datetime.now()
            snapshot = copy.deepcopy(task)

        self._notify(snapshot)
        return snapshot

    def get(self, task_id: str) -> Optional[Task]:
        """Return a snapshot of the task, or None if unknown."""
        with self._lock:
            task = self._tasks.get(task_id)
            return copy.deepcopy(task) if task is not None else None

    def list_tasks(self, status: Optional[TaskStatus] = None) -> List[Task]:
        with self._lock:
            return [
                copy.deepcopy(task)
                for task in self._tasks.values()
                if status is None or task.status is status
            ]

    def __contains__(self, task_id: str) -> bool:
        with self._lock:
            return task_id in self._tasks

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def _notify(self, snapshot: Task) -> None:
        for listener in self._listeners:
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning(f"Task listener failed for {snapshot.task_id}: {e}")
