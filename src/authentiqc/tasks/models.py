"""Background task record and the patch shape the runner applies to it."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from authentiqc.errors import ErrorKind
from authentiqc.models import AnalysisSettings, ProductProfile, QCReport


class TaskType(str, Enum):
    IDENTIFY = "IDENTIFY"
    QC = "QC"


class TaskStatus(str, Enum):
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    AWAITING_FEEDBACK = "AWAITING_FEEDBACK"


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED})
ACTIVE_STATUSES = frozenset({TaskStatus.PROCESSING, TaskStatus.AWAITING_FEEDBACK})

TaskResult = ProductProfile | QCReport


class TaskError(BaseModel):
    """Failure recorded on a task: a category plus a human-readable message."""

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str


class TaskMeta(BaseModel):
    """Display and resume context captured when the task is created."""

    model_config = ConfigDict(frozen=True)

    title: str
    subtitle: str | None = None
    # Product id for QC tasks.
    target_id: str | None = None
    # Inputs snapshotted for identification hydration.
    images: tuple[str, ...] = ()
    url: str | None = None
    settings: AnalysisSettings | None = None
    estimated_seconds: int | None = None


class BackgroundTask(BaseModel):
    """One long-running user operation tracked by the task store."""

    model_config = ConfigDict(frozen=True)

    task_id: str
    type: TaskType
    status: TaskStatus = TaskStatus.PROCESSING
    created_at: datetime
    meta: TaskMeta
    result: TaskResult | None = None
    error: TaskError | None = None

    @model_validator(mode="after")
    def _check_outcome(self) -> "BackgroundTask":
        check_outcome(self)
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class TaskPatch(BaseModel):
    """Partial mutation applied by ``TaskStore.update``."""

    status: TaskStatus | None = None
    result: TaskResult | None = None
    error: TaskError | None = None

    @classmethod
    def completed(cls, result: TaskResult) -> "TaskPatch":
        return cls(status=TaskStatus.COMPLETED, result=result)

    @classmethod
    def failed(cls, kind: ErrorKind, message: str) -> "TaskPatch":
        return cls(status=TaskStatus.FAILED, error=TaskError(kind=kind, message=message))

    def changes(self) -> dict[str, object]:
        return {name: getattr(self, name) for name in self.model_fields_set}


def check_outcome(task: BackgroundTask) -> None:
    """Raise ValueError unless result/error match the task status."""
    if task.status is TaskStatus.COMPLETED:
        if task.result is None or task.error is not None:
            raise ValueError("COMPLETED tasks carry a result and no error")
    elif task.status is TaskStatus.FAILED:
        if task.error is None or task.result is not None:
            raise ValueError("FAILED tasks carry an error and no result")
    elif task.result is not None or task.error is not None:
        raise ValueError(f"{task.status.value} tasks carry neither result nor error")
