"""Pydantic models for products, QC history and analysis settings.

Beginner terms used in this file:
- Profile: what the vision model believes a product is (name, brand, ...).
- Batch: one group of inspection photos uploaded together.
- Report: one scored QC analysis, split into named sections.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

Grade = Literal["PASS", "FAIL", "CAUTION"]


class ModelTier(str, Enum):
    FAST = "FAST"
    DETAILED = "DETAILED"


class ExpertMode(str, Enum):
    NORMAL = "NORMAL"
    EXPERT = "EXPERT"


class AnalysisSettings(BaseModel):
    """Model tier and persona chosen by the user for one analysis."""

    model_tier: ModelTier = ModelTier.FAST
    expert_mode: ExpertMode = ExpertMode.NORMAL


class ProductProfile(BaseModel):
    name: str
    brand: str = ""
    category: str = ""
    price_estimate: str = ""
    material: str = ""
    features: list[str] = Field(default_factory=list)
    description: str = ""
    url: str | None = None
    image_urls: list[str] = Field(default_factory=list)


class QCSection(BaseModel):
    section_name: str
    score: float = Field(ge=0, le=100)
    grade: Grade
    observations: list[str] = Field(default_factory=list)
    # References into QCReport.qc_image_ids.
    image_ids: list[str] = Field(default_factory=list)


class QCReport(BaseModel):
    id: str
    generated_at: datetime
    overall_score: float = Field(ge=0, le=100)
    overall_grade: Grade
    summary: str = ""
    sections: list[QCSection] = Field(default_factory=list)
    based_on_batch_ids: list[str] = Field(default_factory=list)
    qc_image_ids: list[str] = Field(default_factory=list)
    model_tier: ModelTier
    expert_mode: ExpertMode
    user_comments: str = ""
    request_for_more_info: list[str] = Field(default_factory=list)


class QCBatch(BaseModel):
    id: str
    timestamp: datetime
    image_ids: list[str] = Field(default_factory=list)


class Product(BaseModel):
    """A tracked product with append-only inspection and report history."""

    id: str
    profile: ProductProfile
    reference_image_ids: list[str] = Field(default_factory=list)
    qc_batches: list[QCBatch] = Field(default_factory=list)
    reports: list[QCReport] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    creation_settings: AnalysisSettings | None = None

    def inspection_image_ids(self) -> list[str]:
        """All stored inspection image ids, oldest batch first."""
        return [image_id for batch in self.qc_batches for image_id in batch.image_ids]
