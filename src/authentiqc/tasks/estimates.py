"""Rough completion-time estimates shown next to running tasks."""

from __future__ import annotations

from authentiqc.models import ModelTier
from authentiqc.tasks.models import TaskType

IDENTIFY_FAST_S = 15
IDENTIFY_DETAILED_S = 30
QC_BASE_OVERHEAD_S = 10
QC_FAST_PER_IMAGE_S = 10
QC_DETAILED_PER_IMAGE_S = 20


def estimate_task_seconds(task_type: TaskType, model_tier: ModelTier, image_count: int = 1) -> int:
    if task_type is TaskType.IDENTIFY:
        return IDENTIFY_FAST_S if model_tier is ModelTier.FAST else IDENTIFY_DETAILED_S
    per_image = QC_FAST_PER_IMAGE_S if model_tier is ModelTier.FAST else QC_DETAILED_PER_IMAGE_S
    return QC_BASE_OVERHEAD_S + max(0, image_count) * per_image


def format_estimate(seconds: int) -> str:
    """Format seconds as ``45s``, ``2m`` or ``2m 30s``."""
    if seconds < 60:
        return f"{seconds}s"
    minutes, remainder = divmod(seconds, 60)
    if remainder == 0:
        return f"{minutes}m"
    return f"{minutes}m {remainder}s"
