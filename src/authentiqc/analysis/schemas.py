"""Structured response shapes requested from the vision model."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from authentiqc.models import Grade


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class IdentificationResponse(StrictModel):
    name: str = Field(min_length=1)
    brand: str = ""
    category: str = ""
    price_estimate: str = ""
    material: str = ""
    features: list[str] = Field(default_factory=list)
    description: str = ""
    image_urls: list[str] = Field(default_factory=list)


class SectionResponse(StrictModel):
    section_name: str
    score: float = Field(ge=0, le=100)
    grade: Grade = "CAUTION"
    observations: list[str] = Field(default_factory=list)


class QCAnalysisResponse(StrictModel):
    overall_score: float = Field(ge=0, le=100)
    overall_grade: Grade = "CAUTION"
    summary: str = ""
    sections: list[SectionResponse] = Field(default_factory=list)
    request_for_more_info: list[str] = Field(default_factory=list)
