"""Fire-and-forget runner for identification and QC analysis tasks.

Each ``start_*`` call validates its input, appends a PROCESSING task to the
store and returns it immediately. The actual work runs as an ``asyncio``
task detached from the caller; when it finishes, the runner patches the
task to COMPLETED or FAILED. No failure ever escapes a started flow, and
nothing is retried automatically: trying again means starting a new task.

There is no cancellation. Dismissing a task only removes the record; the
operation keeps running and its final update is dropped by the store.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from authentiqc.analysis.service import AnalysisService
from authentiqc.errors import (
    AnalysisError,
    InvalidTransitionError,
    RepositoryError,
    error_kind_for,
)
from authentiqc.models import AnalysisSettings, Product, QCReport
from authentiqc.repository.base import ProductRepository
from authentiqc.repository.catalog import ProductCatalog
from authentiqc.tasks.estimates import estimate_task_seconds
from authentiqc.tasks.inputs import (
    require_credentials,
    require_identification_input,
    require_inspection_images,
    validate_source_url,
)
from authentiqc.tasks.models import BackgroundTask, TaskMeta, TaskPatch, TaskType
from authentiqc.tasks.store import TaskStore
from authentiqc.workflow.qc_graph import build_qc_graph
from authentiqc.workflow.state import QCState, initial_qc_state

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid4())


def _utc_now() -> datetime:
    return datetime.now(UTC)


class TaskRunner:
    """Launches background flows and records their outcome in a ``TaskStore``."""

    def __init__(
        self,
        *,
        store: TaskStore,
        analysis: AnalysisService,
        repository: ProductRepository,
        catalog: ProductCatalog | None = None,
        id_factory: Callable[[], str] = _new_id,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.store = store
        self.analysis = analysis
        self.repository = repository
        self.catalog = catalog or ProductCatalog(repository)
        self._id_factory = id_factory
        self._clock = clock
        self._jobs: set[asyncio.Task[None]] = set()
        self._qc_graph = build_qc_graph(
            repository=repository,
            analysis=analysis,
            catalog=self.catalog,
            id_factory=id_factory,
            clock=clock,
        )

    @property
    def in_flight(self) -> int:
        return len(self._jobs)

    def start_identification_task(
        self,
        credentials: str,
        images: list[str],
        url: str | None,
        settings: AnalysisSettings,
    ) -> BackgroundTask:
        """Create an IDENTIFY task and start identifying in the background.

        Raises ``InputValidationError`` before anything is stored when the
        credentials, images or URL are unusable.
        """
        loop = asyncio.get_running_loop()
        api_key = require_credentials(credentials)
        source_url = validate_source_url(url)
        require_identification_input(images, source_url)

        if source_url:
            subtitle = source_url
        else:
            subtitle = f"{len(images)} images"
        task = BackgroundTask(
            task_id=self._id_factory(),
            type=TaskType.IDENTIFY,
            created_at=self._clock(),
            meta=TaskMeta(
                title="Product Identification",
                subtitle=subtitle,
                images=tuple(images),
                url=source_url,
                settings=settings,
                estimated_seconds=estimate_task_seconds(
                    TaskType.IDENTIFY, settings.model_tier, len(images)
                ),
            ),
        )
        self.store.append(task)
        self._launch(
            loop,
            task,
            self.analysis.identify(api_key, list(images), source_url, settings),
        )
        return task

    def start_qc_task(
        self,
        credentials: str,
        product: Product,
        new_images: list[str],
        settings: AnalysisSettings,
        *,
        reference_images: list[str] | None = None,
        user_comments: str = "",
    ) -> BackgroundTask:
        """Create a QC task and run a cumulative analysis of ``product`` in the background."""
        loop = asyncio.get_running_loop()
        api_key = require_credentials(credentials)
        require_inspection_images(new_images)

        total_images = len(product.inspection_image_ids()) + len(new_images)
        task = BackgroundTask(
            task_id=self._id_factory(),
            type=TaskType.QC,
            created_at=self._clock(),
            meta=TaskMeta(
                title=f"QC Inspection: {product.profile.name}",
                subtitle=f"Analyzing {total_images} inspection images",
                target_id=product.id,
                estimated_seconds=estimate_task_seconds(
                    TaskType.QC, settings.model_tier, total_images
                ),
            ),
        )
        self.store.append(task)
        state = initial_qc_state(
            task_id=task.task_id,
            credentials=api_key,
            product=product,
            new_images=new_images,
            settings=settings,
            reference_images=reference_images,
            user_comments=user_comments,
        )
        self._launch(loop, task, self._run_qc_graph(state))
        return task

    def dismiss_task(self, task_id: str) -> None:
        self.store.remove(task_id)

    async def drain(self) -> None:
        """Wait until every flow started so far has recorded its outcome."""
        while self._jobs:
            await asyncio.gather(*list(self._jobs), return_exceptions=True)

    async def _run_qc_graph(self, state: QCState) -> QCReport:
        final_state = await self._qc_graph.ainvoke(state)
        return final_state["report"]

    def _launch(
        self,
        loop: asyncio.AbstractEventLoop,
        task: BackgroundTask,
        operation: Coroutine[Any, Any, Any],
    ) -> None:
        job = loop.create_task(
            self._settle(task, operation),
            name=f"{task.type.value.lower()}-{task.task_id}",
        )
        self._jobs.add(job)
        job.add_done_callback(self._jobs.discard)
        logger.info(
            "task_run event=start task_id=%s type=%s in_flight=%d",
            task.task_id,
            task.type.value,
            len(self._jobs),
        )

    async def _settle(self, task: BackgroundTask, operation: Coroutine[Any, Any, Any]) -> None:
        try:
            result = await operation
        except (AnalysisError, RepositoryError) as exc:
            logger.warning(
                "task_run event=failed task_id=%s type=%s kind=%s reason=%s",
                task.task_id,
                task.type.value,
                error_kind_for(exc),
                exc,
            )
            patch = TaskPatch.failed(error_kind_for(exc), str(exc) or type(exc).__name__)
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "task_run event=failed task_id=%s type=%s kind=unexpected",
                task.task_id,
                task.type.value,
            )
            patch = TaskPatch.failed("unexpected", str(exc) or type(exc).__name__)
        else:
            try:
                patch = TaskPatch.completed(result)
            except ValidationError as exc:
                logger.exception(
                    "task_run event=failed task_id=%s type=%s kind=unexpected reason=bad_result",
                    task.task_id,
                    task.type.value,
                )
                patch = TaskPatch.failed(
                    "unexpected", f"Unusable result: {exc.error_count()} validation errors"
                )
            else:
                logger.info(
                    "task_run event=completed task_id=%s type=%s",
                    task.task_id,
                    task.type.value,
                )

        self._record(task, patch)

    def _record(self, task: BackgroundTask, patch: TaskPatch) -> None:
        try:
            updated = self.store.update(task.task_id, patch)
        except InvalidTransitionError as exc:
            logger.exception("task_run event=update_rejected task_id=%s", task.task_id)
            current = self.store.get(task.task_id)
            if current is None or current.is_terminal:
                return
            # A rejected outcome still has to leave PROCESSING.
            updated = self.store.update(task.task_id, TaskPatch.failed("unexpected", str(exc)))

        if updated is None:
            logger.info(
                "task_run event=result_dropped task_id=%s reason=dismissed", task.task_id
            )
