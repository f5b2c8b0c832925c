"""
State definitions for the report processing pipeline.

This module defines the context passed between pipeline steps. One context
is created per ``process()`` call and discarded when it returns.
"""

from typing import List, Optional, TypedDict

from adr_enricher.models.analysis import AnalysisResult
from adr_enricher.models.processing import MediaFile, ErrorRecord, StepRecord
from adr_enricher.models.report import Medication, ReportSnapshot


class ProcessingContext(TypedDict):
    """Type definition for the state passed between pipeline steps."""

    report_id: str
    force_reprocess: bool
    already_processed: bool
    report: Optional[ReportSnapshot]
    medication: Optional[Medication]
    media_files: List[MediaFile]
    analysis: Optional[AnalysisResult]
    model_used: Optional[str]
    steps: List[StepRecord]
    errors: List[ErrorRecord]


def new_context(report_id: str, force_reprocess: bool = False) -> ProcessingContext:
    """Create an empty context for one run."""
    return {
        "report_id": report_id,
        "force_reprocess": force_reprocess,
        "already_processed": False,
        "report": None,
        "medication": None,
        "media_files": [],
        "analysis": None,
        "model_used": None,
        "steps": [],
        "errors": [],
    }
