"""Analysis service: product identification and cumulative QC reports.

The service turns images and settings into typed results. Blocking HTTP
calls run in a worker thread so every call is a suspension point for the
event loop. A failed DETAILED-tier call is retried once on the FAST tier
before the failure is reported.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Protocol, TypeVar
from uuid import uuid4

from pydantic import BaseModel

from authentiqc.analysis.grading import correct_report_grades, normalize_profile
from authentiqc.analysis.llm import (
    ContentPart,
    OpenAIVisionAdapter,
    VisionModelAdapter,
    image_part,
    text_part,
)
from authentiqc.analysis.schemas import IdentificationResponse, QCAnalysisResponse
from authentiqc.errors import AnalysisError
from authentiqc.models import (
    AnalysisSettings,
    ExpertMode,
    ModelTier,
    ProductProfile,
    QCReport,
    QCSection,
)

logger = logging.getLogger(__name__)

TResult = TypeVar("TResult")
AdapterFactory = Callable[[str], VisionModelAdapter]


class AnalysisService(Protocol):
    async def identify(
        self,
        credentials: str,
        images: list[str],
        url: str | None,
        settings: AnalysisSettings,
    ) -> ProductProfile: ...

    async def analyze(
        self,
        credentials: str,
        profile: ProductProfile,
        reference_images: list[str],
        inspection_images: list[str],
        settings: AnalysisSettings,
        *,
        qc_image_ids: list[str],
        user_comments: str = "",
    ) -> QCReport: ...


IDENTIFY_SYSTEM_PROMPT = (
    "You identify retail products from photos and links. "
    "Return the product's name, brand, category, estimated price, material, "
    "key features, a short description and any official image URLs you know of."
)

QC_SYSTEM_PROMPT = (
    "You are a quality-control inspector comparing inspection photos of a product "
    "against authentic reference photos and its profile."
)

EXPERT_SUFFIX = " Apply expert-level scrutiny to stitching, materials, markings and hardware."

QC_INSTRUCTIONS = """Inspect the CUMULATIVE set of QC inspection images against the reference images and profile.

SCORING RUBRIC:
- PASS: > 80 (good condition, authentic, no major defects)
- CAUTION: 61 - 80 (suspicious, minor defects, or inconclusive)
- FAIL: <= 60 (replica, damaged, or major defects)

Break the analysis into named sections with a 0-100 score, a grade and bullet observations,
give an overall score, grade and summary, and list what extra photos would improve the analysis."""


class VisionAnalysisService:
    """``AnalysisService`` backed by an OpenAI-compatible vision model."""

    def __init__(
        self,
        *,
        fast_model: str,
        detailed_model: str,
        timeout_s: float,
        adapter_factory: AdapterFactory,
    ) -> None:
        self.fast_model = fast_model
        self.detailed_model = detailed_model
        self.timeout_s = timeout_s
        self.adapter_factory = adapter_factory

    def model_for(self, tier: ModelTier) -> str:
        return self.detailed_model if tier is ModelTier.DETAILED else self.fast_model

    async def identify(
        self,
        credentials: str,
        images: list[str],
        url: str | None,
        settings: AnalysisSettings,
    ) -> ProductProfile:
        parts: list[ContentPart] = []
        for index, image in enumerate(images, start=1):
            parts.append(text_part(f"PRODUCT IMAGE {index}:"))
            parts.append(image_part(image))
        if url:
            parts.append(text_part(f"PRODUCT PAGE URL: {url}"))
        parts.append(text_part("Identify this product."))

        async def _attempt(tier: ModelTier) -> ProductProfile:
            response = await self._generate(
                credentials,
                tier=tier,
                system_prompt=_system_prompt(IDENTIFY_SYSTEM_PROMPT, settings.expert_mode),
                parts=parts,
                response_model=IdentificationResponse,
            )
            profile = ProductProfile(url=url, **response.model_dump())
            return normalize_profile(profile)

        return await self._with_tier_fallback("identify", settings, _attempt)

    async def analyze(
        self,
        credentials: str,
        profile: ProductProfile,
        reference_images: list[str],
        inspection_images: list[str],
        settings: AnalysisSettings,
        *,
        qc_image_ids: list[str],
        user_comments: str = "",
    ) -> QCReport:
        parts: list[ContentPart] = []
        for index, image in enumerate(reference_images, start=1):
            parts.append(text_part(f"REFERENCE IMAGE {index} (authentic):"))
            parts.append(image_part(image))
        parts.append(
            text_part(
                "AUTHENTIC PRODUCT PROFILE:\n"
                + json.dumps(profile.model_dump(mode="json"), indent=2)
            )
        )
        for index, image in enumerate(inspection_images, start=1):
            parts.append(text_part(f"QC INSPECTION IMAGE {index} (to be analyzed):"))
            parts.append(image_part(image))
        if user_comments:
            parts.append(text_part(f"USER COMMENTS TO CONSIDER:\n{user_comments}"))
        parts.append(text_part(QC_INSTRUCTIONS))

        async def _attempt(tier: ModelTier) -> QCReport:
            response = await self._generate(
                credentials,
                tier=tier,
                system_prompt=_system_prompt(QC_SYSTEM_PROMPT, settings.expert_mode),
                parts=parts,
                response_model=QCAnalysisResponse,
            )
            report = QCReport(
                id=str(uuid4()),
                generated_at=datetime.now(UTC),
                overall_score=response.overall_score,
                overall_grade=response.overall_grade,
                summary=response.summary,
                sections=[QCSection(**section.model_dump()) for section in response.sections],
                qc_image_ids=list(qc_image_ids),
                model_tier=tier,
                expert_mode=settings.expert_mode,
                user_comments=user_comments,
                request_for_more_info=response.request_for_more_info,
            )
            return correct_report_grades(report)

        return await self._with_tier_fallback("analyze", settings, _attempt)

    async def _with_tier_fallback(
        self,
        operation: str,
        settings: AnalysisSettings,
        attempt: Callable[[ModelTier], Awaitable[TResult]],
    ) -> TResult:
        try:
            return await attempt(settings.model_tier)
        except AnalysisError as exc:
            if settings.model_tier is not ModelTier.DETAILED:
                raise
            logger.warning(
                "analysis event=tier_fallback operation=%s from=%s to=%s reason=%s",
                operation,
                ModelTier.DETAILED.value,
                ModelTier.FAST.value,
                exc,
            )
            return await attempt(ModelTier.FAST)

    async def _generate(
        self,
        credentials: str,
        *,
        tier: ModelTier,
        system_prompt: str,
        parts: list[ContentPart],
        response_model: type[BaseModel],
    ):
        adapter = self.adapter_factory(credentials)
        model = self.model_for(tier)
        try:
            return await asyncio.to_thread(
                adapter.generate_structured,
                model=model,
                system_prompt=system_prompt,
                parts=parts,
                response_model=response_model,
                timeout_s=self.timeout_s,
            )
        except (OSError, ValueError, RuntimeError) as exc:
            raise AnalysisError(f"{model} request failed: {exc}") from exc


def build_analysis_service(
    *,
    base_url: str,
    fast_model: str,
    detailed_model: str,
    timeout_s: float,
    max_retries: int,
    backoff_s: float,
) -> VisionAnalysisService:
    def _adapter_for(api_key: str) -> VisionModelAdapter:
        return OpenAIVisionAdapter(
            api_key=api_key,
            base_url=base_url,
            max_retries=max_retries,
            backoff_s=backoff_s,
        )

    return VisionAnalysisService(
        fast_model=fast_model,
        detailed_model=detailed_model,
        timeout_s=timeout_s,
        adapter_factory=_adapter_for,
    )


def _system_prompt(base: str, expert_mode: ExpertMode) -> str:
    return base + EXPERT_SUFFIX if expert_mode is ExpertMode.EXPERT else base
