"""Typed state contract for the QC LangGraph workflow."""

from typing import TypedDict

from authentiqc.models import AnalysisSettings, Product, QCBatch, QCReport


class QCState(TypedDict, total=False):
    task_id: str
    credentials: str
    product: Product
    settings: AnalysisSettings
    user_comments: str
    new_images: list[str]
    # None means "resolve from the product's stored reference images".
    reference_images: list[str] | None
    history_images: list[str]
    new_image_ids: list[str]
    report: QCReport
    batch: QCBatch
    updated_product: Product


def initial_qc_state(
    *,
    task_id: str,
    credentials: str,
    product: Product,
    new_images: list[str],
    settings: AnalysisSettings,
    reference_images: list[str] | None = None,
    user_comments: str = "",
) -> QCState:
    return {
        "task_id": task_id,
        "credentials": credentials,
        "product": product,
        "settings": settings,
        "user_comments": user_comments,
        "new_images": list(new_images),
        "reference_images": list(reference_images) if reference_images is not None else None,
        "history_images": [],
        "new_image_ids": [],
    }
