"""Background task records, store, runner and activity projection."""

from authentiqc.tasks.models import (
    BackgroundTask,
    TaskError,
    TaskMeta,
    TaskPatch,
    TaskStatus,
    TaskType,
)
from authentiqc.tasks.projection import (
    ActivityFeed,
    IdentificationDraft,
    build_activity_feed,
    hydrate_identification,
)
from authentiqc.tasks.runner import TaskRunner
from authentiqc.tasks.store import TaskStore

__all__ = [
    "ActivityFeed",
    "BackgroundTask",
    "IdentificationDraft",
    "TaskError",
    "TaskMeta",
    "TaskPatch",
    "TaskRunner",
    "TaskStatus",
    "TaskStore",
    "TaskType",
    "build_activity_feed",
    "hydrate_identification",
]
