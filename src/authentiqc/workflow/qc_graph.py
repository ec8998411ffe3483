"""LangGraph workflow for one cumulative QC analysis run.

Nodes run strictly in order and any exception aborts the rest of the run:

    collect_history -> analyze -> store_images -> record_results -> refresh_catalog

Nothing is written to the repository before ``analyze`` succeeds. A crash
between ``store_images`` and ``record_results`` can leave stored images that
no batch references.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from langgraph.graph import END, StateGraph

from authentiqc.analysis.service import AnalysisService
from authentiqc.models import QCBatch
from authentiqc.repository.base import ProductRepository
from authentiqc.repository.catalog import ProductCatalog
from authentiqc.workflow.state import QCState

logger = logging.getLogger(__name__)


def build_qc_graph(
    *,
    repository: ProductRepository,
    analysis: AnalysisService,
    catalog: ProductCatalog,
    id_factory: Callable[[], str],
    clock: Callable[[], datetime],
):
    async def collect_history(state: QCState) -> QCState:
        product = state["product"]
        history: list[str] = []
        skipped = 0
        for image_id in product.inspection_image_ids():
            data = await repository.get_image(image_id)
            if data is None:
                skipped += 1
                continue
            history.append(data)

        reference_images = state.get("reference_images")
        if reference_images is None:
            reference_images = []
            for image_id in product.reference_image_ids:
                data = await repository.get_image(image_id)
                if data is not None:
                    reference_images.append(data)

        logger.info(
            "qc_run event=history_collected task_id=%s product_id=%s history=%d skipped=%d",
            state["task_id"],
            product.id,
            len(history),
            skipped,
        )
        return {
            "history_images": history,
            "reference_images": reference_images,
            "new_image_ids": [id_factory() for _ in state["new_images"]],
        }

    async def analyze(state: QCState) -> QCState:
        product = state["product"]
        report = await analysis.analyze(
            state["credentials"],
            product.profile,
            state.get("reference_images") or [],
            [*state["history_images"], *state["new_images"]],
            state["settings"],
            qc_image_ids=[*product.inspection_image_ids(), *state["new_image_ids"]],
            user_comments=state.get("user_comments", ""),
        )
        return {"report": report}

    async def store_images(state: QCState) -> QCState:
        for image_id, data in zip(state["new_image_ids"], state["new_images"], strict=True):
            await repository.save_image(image_id, data)
        return {"new_image_ids": list(state["new_image_ids"])}

    async def record_results(state: QCState) -> QCState:
        # Append to the stored product so overlapping runs keep each other's history.
        snapshot = state["product"]
        product = await repository.get_product(snapshot.id) or snapshot
        batch = QCBatch(id=id_factory(), timestamp=clock(), image_ids=list(state["new_image_ids"]))
        batches = [*product.qc_batches, batch]
        report = state["report"].model_copy(
            update={"based_on_batch_ids": [item.id for item in batches]}
        )
        updated = product.model_copy(
            update={"qc_batches": batches, "reports": [*product.reports, report]}
        )
        await repository.save_product(updated)
        logger.info(
            "qc_run event=product_saved task_id=%s product_id=%s batches=%d reports=%d",
            state["task_id"],
            updated.id,
            len(updated.qc_batches),
            len(updated.reports),
        )
        return {"batch": batch, "report": report, "updated_product": updated}

    async def refresh_catalog(state: QCState) -> QCState:
        await catalog.refresh()
        updated = state["updated_product"]
        return {"updated_product": catalog.find(updated.id) or updated}

    graph = StateGraph(QCState)

    graph.add_node("collect_history", collect_history)
    graph.add_node("analyze", analyze)
    graph.add_node("store_images", store_images)
    graph.add_node("record_results", record_results)
    graph.add_node("refresh_catalog", refresh_catalog)

    graph.set_entry_point("collect_history")
    graph.add_edge("collect_history", "analyze")
    graph.add_edge("analyze", "store_images")
    graph.add_edge("store_images", "record_results")
    graph.add_edge("record_results", "refresh_catalog")
    graph.add_edge("refresh_catalog", END)

    return graph.compile()
