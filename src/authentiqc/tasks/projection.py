"""Read-only views of the task list for the activity panel.

The store never filters; "active" vs "finished", navigation targets and
hydration drafts are all derived here from ``TaskStore.list()``.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel, Field

from authentiqc.errors import TaskNotReadyError
from authentiqc.models import AnalysisSettings, ProductProfile
from authentiqc.tasks.estimates import format_estimate
from authentiqc.tasks.models import ACTIVE_STATUSES, BackgroundTask, TaskStatus, TaskType


class ActivityItem(BaseModel):
    task_id: str
    type: TaskType
    status: TaskStatus
    title: str
    subtitle: str | None = None
    created_at: datetime
    estimate: str | None = None
    error: str | None = None
    # Route to open when the item is tapped; None when not navigable.
    navigate_to: str | None = None


class ActivityFeed(BaseModel):
    active_count: int = 0
    items: list[ActivityItem] = Field(default_factory=list)


class IdentificationDraft(BaseModel):
    """Form state for creating a product from a finished identification."""

    task_id: str
    profile: ProductProfile
    images: list[str] = Field(default_factory=list)
    url: str | None = None
    settings: AnalysisSettings | None = None


def navigation_target(task: BackgroundTask) -> str | None:
    if task.status is not TaskStatus.COMPLETED:
        return None
    if task.type is TaskType.IDENTIFY:
        return f"/products/new?task={task.task_id}"
    if task.type is TaskType.QC and task.meta.target_id:
        return f"/products/{task.meta.target_id}"
    return None


def build_activity_feed(tasks: Iterable[BackgroundTask]) -> ActivityFeed:
    items: list[ActivityItem] = []
    active = 0
    for task in tasks:
        if task.status in ACTIVE_STATUSES:
            active += 1
        estimate = task.meta.estimated_seconds
        items.append(
            ActivityItem(
                task_id=task.task_id,
                type=task.type,
                status=task.status,
                title=task.meta.title,
                subtitle=task.meta.subtitle,
                created_at=task.created_at,
                estimate=(
                    format_estimate(estimate)
                    if estimate is not None and task.status is TaskStatus.PROCESSING
                    else None
                ),
                error=task.error.message if task.error else None,
                navigate_to=navigation_target(task),
            )
        )
    return ActivityFeed(active_count=active, items=items)


def hydrate_identification(task: BackgroundTask) -> IdentificationDraft:
    """Rebuild the add-product form from a completed identification task."""
    if task.type is not TaskType.IDENTIFY:
        raise TaskNotReadyError(f"Task {task.task_id} is not an identification task")
    if task.status is not TaskStatus.COMPLETED or not isinstance(task.result, ProductProfile):
        raise TaskNotReadyError(f"Task {task.task_id} has no identification result yet")
    return IdentificationDraft(
        task_id=task.task_id,
        profile=task.result,
        images=list(task.meta.images),
        url=task.meta.url,
        settings=task.meta.settings,
    )
