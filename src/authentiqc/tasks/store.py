"""In-memory, observable store of background tasks.

The store is the only shared mutable structure of the task core. It is
mutated through ``append``, ``update`` and ``remove`` (plus the expiry sweep,
which is a batch of removals) and every mutation notifies subscribers with
the new ordered list. All operations are synchronous, so on a single event
loop each one is atomic.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from authentiqc.errors import DuplicateTaskError, InvalidTransitionError
from authentiqc.tasks.models import (
    BackgroundTask,
    TaskPatch,
    TaskStatus,
    check_outcome,
)

logger = logging.getLogger(__name__)

TaskListener = Callable[[list[BackgroundTask]], None]


class TaskStore:
    """Most-recent-first collection of ``BackgroundTask`` records."""

    def __init__(self) -> None:
        self._tasks: list[BackgroundTask] = []
        self._listeners: list[TaskListener] = []

    def append(self, task: BackgroundTask) -> None:
        if any(existing.task_id == task.task_id for existing in self._tasks):
            raise DuplicateTaskError(f"Task {task.task_id} already exists")
        self._tasks.insert(0, task)
        self._notify()

    def update(self, task_id: str, patch: TaskPatch) -> BackgroundTask | None:
        """Apply ``patch`` to the matching task.

        Returns ``None`` without touching the store when the id is absent,
        which is what happens when a task is dismissed while its operation
        is still in flight.
        """
        index = self._index_of(task_id)
        if index is None:
            logger.debug("task_store event=update_dropped task_id=%s", task_id)
            return None

        current = self._tasks[index]
        if current.is_terminal:
            raise InvalidTransitionError(
                f"Task {task_id} is already {current.status.value}"
            )
        updated = current.model_copy(update=patch.changes())
        try:
            check_outcome(updated)
        except ValueError as exc:
            raise InvalidTransitionError(str(exc)) from exc

        self._tasks[index] = updated
        self._notify()
        return updated

    def remove(self, task_id: str) -> None:
        index = self._index_of(task_id)
        if index is None:
            return
        del self._tasks[index]
        self._notify()

    def list(self) -> list[BackgroundTask]:
        return list(self._tasks)

    def get(self, task_id: str) -> BackgroundTask | None:
        index = self._index_of(task_id)
        return self._tasks[index] if index is not None else None

    def subscribe(self, listener: TaskListener) -> Callable[[], None]:
        """Register ``listener``; call the returned function to stop listening."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def prune_expired(
        self,
        *,
        now: datetime | None = None,
        completed_ttl: timedelta = timedelta(hours=1),
        failed_ttl: timedelta = timedelta(minutes=30),
    ) -> int:
        """Drop finished tasks older than their TTL and return how many went.

        PROCESSING and AWAITING_FEEDBACK tasks are always kept.
        """
        current_time = now or datetime.now(UTC)
        kept: list[BackgroundTask] = []
        for task in self._tasks:
            age = current_time - task.created_at
            if task.status is TaskStatus.COMPLETED and age >= completed_ttl:
                continue
            if task.status is TaskStatus.FAILED and age >= failed_ttl:
                continue
            kept.append(task)

        removed = len(self._tasks) - len(kept)
        if removed:
            self._tasks = kept
            logger.info("task_store event=pruned removed=%d remaining=%d", removed, len(kept))
            self._notify()
        return removed

    def __len__(self) -> int:
        return len(self._tasks)

    def _index_of(self, task_id: str) -> int | None:
        for index, task in enumerate(self._tasks):
            if task.task_id == task_id:
                return index
        return None

    def _notify(self) -> None:
        snapshot = self.list()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # noqa: BLE001
                logger.exception("task_store event=listener_failed listener=%r", listener)
