from __future__ import annotations

import asyncio
from datetime import UTC, datetime

from authentiqc.errors import AnalysisError
from authentiqc.models import AnalysisSettings, ExpertMode, ModelTier
from authentiqc.repository.catalog import ProductCatalog
from authentiqc.tasks.models import TaskStatus
from authentiqc.tasks.runner import TaskRunner
from authentiqc.tasks.store import TaskStore
from fakes import FakeAnalysisService, RecordingRepository, make_product, sequential_ids

CLOCK = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)


def _setup(
    *, analysis: FakeAnalysisService | None = None, repository: RecordingRepository | None = None
) -> tuple[TaskRunner, FakeAnalysisService, RecordingRepository, ProductCatalog]:
    analysis = analysis or FakeAnalysisService()
    repository = repository or RecordingRepository()
    catalog = ProductCatalog(repository)
    runner = TaskRunner(
        store=TaskStore(),
        analysis=analysis,
        repository=repository,
        catalog=catalog,
        id_factory=sequential_ids("id"),
        clock=lambda: CLOCK,
    )
    return runner, analysis, repository, catalog


def test_first_qc_run_creates_one_batch_and_one_report() -> None:
    runner, analysis, repository, catalog = _setup()
    product = make_product()

    async def scenario() -> None:
        await repository.save_product(product)
        task = runner.start_qc_task("sk-test", product, ["a.png"], AnalysisSettings())
        await runner.drain()

        finished = runner.store.get(task.task_id)
        assert finished.status is TaskStatus.COMPLETED

        stored = await repository.get_product(product.id)
        assert len(stored.qc_batches) == 1
        batch = stored.qc_batches[0]
        assert len(batch.image_ids) == 1
        new_id = batch.image_ids[0]
        assert new_id != "a.png"
        assert batch.timestamp == CLOCK
        assert await repository.get_image(new_id) == "a.png"

        assert len(stored.reports) == 1
        report = stored.reports[0]
        assert report.based_on_batch_ids == [batch.id]
        assert report.qc_image_ids == [new_id]
        assert finished.result == report

        assert catalog.find(product.id) == stored

    asyncio.run(scenario())


def test_analysis_sees_every_historical_image_in_batch_order() -> None:
    runner, analysis, repository, _ = _setup()
    product = make_product(batches=[["i1", "i2"], ["i3"]])

    async def scenario() -> None:
        for image_id in ("i1", "i2", "i3"):
            await repository.save_image(image_id, f"data-{image_id}")
        await repository.save_product(product)

        runner.start_qc_task(
            "sk-test",
            product,
            ["new-1", "new-2"],
            AnalysisSettings(model_tier=ModelTier.DETAILED, expert_mode=ExpertMode.EXPERT),
            user_comments="Check the zipper.",
        )
        await runner.drain()

        stored = await repository.get_product(product.id)
        assert [batch.id for batch in stored.qc_batches][:2] == ["batch-0", "batch-1"]
        new_ids = stored.qc_batches[-1].image_ids
        assert stored.inspection_image_ids() == ["i1", "i2", "i3", *new_ids]
        assert stored.reports[-1].based_on_batch_ids == ["batch-0", "batch-1", stored.qc_batches[-1].id]

    asyncio.run(scenario())

    call = analysis.analyze_calls[0]
    assert call.inspection_images == ["data-i1", "data-i2", "data-i3", "new-1", "new-2"]
    assert call.qc_image_ids[:3] == ["i1", "i2", "i3"]
    assert len(call.qc_image_ids) == 5
    assert call.user_comments == "Check the zipper."
    assert call.settings.model_tier is ModelTier.DETAILED


def test_missing_history_images_are_skipped() -> None:
    runner, analysis, repository, _ = _setup()
    product = make_product(batches=[["i1", "lost", "i3"]])

    async def scenario() -> None:
        await repository.save_image("i1", "data-i1")
        await repository.save_image("i3", "data-i3")
        await repository.save_product(product)

        task = runner.start_qc_task("sk-test", product, ["new"], AnalysisSettings())
        await runner.drain()
        assert runner.store.get(task.task_id).status is TaskStatus.COMPLETED

    asyncio.run(scenario())
    assert analysis.analyze_calls[0].inspection_images == ["data-i1", "data-i3", "new"]


def test_reference_images_come_from_the_product_unless_given() -> None:
    runner, analysis, repository, _ = _setup()
    product = make_product(reference_image_ids=["r1", "r-missing"])

    async def scenario() -> None:
        await repository.save_image("r1", "ref-data")
        await repository.save_product(product)

        runner.start_qc_task("sk-test", product, ["new"], AnalysisSettings())
        await runner.drain()
        latest = await repository.get_product(product.id)
        runner.start_qc_task(
            "sk-test", latest, ["newer"], AnalysisSettings(), reference_images=["explicit"]
        )
        await runner.drain()

    asyncio.run(scenario())
    assert analysis.analyze_calls[0].reference_images == ["ref-data"]
    assert analysis.analyze_calls[1].reference_images == ["explicit"]
    assert analysis.analyze_calls[1].inspection_images == ["new", "newer"]


def test_analysis_failure_leaves_product_untouched() -> None:
    analysis = FakeAnalysisService(fail_with=AnalysisError("model refused"))
    runner, _, repository, _ = _setup(analysis=analysis)
    product = make_product(batches=[["i1"]])

    async def scenario() -> None:
        await repository.save_image("i1", "data-i1")
        await repository.save_product(product)

        task = runner.start_qc_task("sk-test", product, ["new"], AnalysisSettings())
        await runner.drain()

        failed = runner.store.get(task.task_id)
        assert failed.status is TaskStatus.FAILED
        assert failed.error.kind == "analysis"
        assert failed.error.message == "model refused"
        assert await repository.get_product(product.id) == product

    asyncio.run(scenario())
    assert repository.saved_image_ids == ["i1"]


def test_repository_failure_is_reported_as_repository_error() -> None:
    repository = RecordingRepository()
    runner, _, _, _ = _setup(repository=repository)
    product = make_product()

    async def scenario() -> None:
        await repository.save_product(product)
        repository.fail_product_save = True

        task = runner.start_qc_task("sk-test", product, ["new"], AnalysisSettings())
        await runner.drain()

        failed = runner.store.get(task.task_id)
        assert failed.status is TaskStatus.FAILED
        assert failed.error.kind == "repository"
        assert failed.result is None

    asyncio.run(scenario())


def test_dismissed_qc_task_still_persists_the_product() -> None:
    runner, analysis, repository, _ = _setup()
    product = make_product()

    async def scenario() -> None:
        await repository.save_product(product)
        analysis.gate = asyncio.Event()
        task = runner.start_qc_task("sk-test", product, ["new"], AnalysisSettings())
        await asyncio.sleep(0)
        runner.dismiss_task(task.task_id)
        analysis.gate.set()
        await runner.drain()

        assert runner.store.list() == []
        stored = await repository.get_product(product.id)
        assert len(stored.reports) == 1

    asyncio.run(scenario())


def test_overlapping_qc_runs_on_one_product_keep_both_batches() -> None:
    runner, analysis, repository, _ = _setup()
    product = make_product()

    async def scenario() -> None:
        await repository.save_product(product)
        analysis.gate = asyncio.Event()
        first = runner.start_qc_task("sk-test", product, ["a.png"], AnalysisSettings())
        second = runner.start_qc_task("sk-test", product, ["b.png", "c.png"], AnalysisSettings())
        await asyncio.sleep(0)
        analysis.gate.set()
        await runner.drain()

        assert runner.store.get(first.task_id).status is TaskStatus.COMPLETED
        assert runner.store.get(second.task_id).status is TaskStatus.COMPLETED

        stored = await repository.get_product(product.id)
        assert len(stored.qc_batches) == 2
        assert len(stored.reports) == 2
        assert sorted(len(batch.image_ids) for batch in stored.qc_batches) == [1, 2]
        assert stored.reports[-1].based_on_batch_ids == [batch.id for batch in stored.qc_batches]

    asyncio.run(scenario())
