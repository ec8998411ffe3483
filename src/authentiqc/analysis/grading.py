"""Post-processing applied to model output before it reaches a task.

Models sometimes return a grade that disagrees with their own score, so the
grade is always recomputed from the rubric: PASS above 80, CAUTION from 61
to 80, FAIL at 60 or below.
"""

from __future__ import annotations

import re

from authentiqc.models import Grade, ProductProfile, QCReport

PASS_ABOVE = 80
CAUTION_FROM = 61


def grade_for_score(score: float) -> Grade:
    if score > PASS_ABOVE:
        return "PASS"
    if score >= CAUTION_FROM:
        return "CAUTION"
    return "FAIL"


def correct_report_grades(report: QCReport) -> QCReport:
    sections = [
        section.model_copy(update={"grade": grade_for_score(section.score)})
        for section in report.sections
    ]
    return report.model_copy(
        update={"overall_grade": grade_for_score(report.overall_score), "sections": sections}
    )


_CURRENCY_NOISE = re.compile(r"(USD|US\$|EUR|GBP|AUD|CAD|€|£|\$)", re.IGNORECASE)
_PREFIX_NOISE = re.compile(r"(approx\.?|msrp:?|~|≈|,)", re.IGNORECASE)
_RANGE = re.compile(r"(-?\d+(?:\.\d+)?)\s*(?:-|to|–|—)\s*(-?\d+(?:\.\d+)?)", re.IGNORECASE)
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def normalize_price_estimate(raw: str) -> str:
    """Collapse price strings to ``$<amount>``; ranges become their midpoint."""
    text = (raw or "").strip()
    if not text:
        return ""
    cleaned = _PREFIX_NOISE.sub("", _CURRENCY_NOISE.sub("", text)).strip()

    range_match = _RANGE.search(cleaned)
    if range_match:
        low, high = float(range_match.group(1)), float(range_match.group(2))
        return f"${round((low + high) / 2)}"

    number_match = _NUMBER.search(cleaned)
    if number_match:
        return f"${round(float(number_match.group(0)))}"
    return text


def normalize_profile(profile: ProductProfile) -> ProductProfile:
    features = [feature.strip() for feature in profile.features if feature.strip()]
    return profile.model_copy(
        update={
            "name": profile.name.strip(),
            "category": profile.category.strip().lower() or "uncategorized",
            "price_estimate": normalize_price_estimate(profile.price_estimate),
            "features": features,
        }
    )
