"""Vision-model analysis: identification, QC reports and grade correction."""

from authentiqc.analysis.grading import correct_report_grades, grade_for_score
from authentiqc.analysis.service import (
    AnalysisService,
    VisionAnalysisService,
    build_analysis_service,
)

__all__ = [
    "AnalysisService",
    "VisionAnalysisService",
    "build_analysis_service",
    "correct_report_grades",
    "grade_for_score",
]
