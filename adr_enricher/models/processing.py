"""
Data models for a single processing run.

This module defines the transient media and step bookkeeping produced while
a report moves through the pipeline, and the structured result handed back
to the consumer.
"""

import base64
from typing import List, Optional

from pydantic import BaseModel, Field

from adr_enricher.models.analysis import AnalysisResult


class MediaFile(BaseModel):
    """Attachment bytes resolved for one run; never persisted."""

    key: str = Field(..., description="Object key in the blob store")
    data: bytes = Field(..., description="Raw file content")
    mime_type: str = Field("application/octet-stream", description="Resolved MIME type")
    size: int = Field(0, description="Size in bytes")

    @property
    def base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


class StepRecord(BaseModel):
    name: str
    duration_ms: float
    success: bool


class ErrorRecord(BaseModel):
    step: str
    error: str
    timestamp: str


class ProcessingResult(BaseModel):
    """Outcome of ``ReportProcessor.process``; the processor never raises."""

    success: bool = Field(..., description="Whether the pipeline completed")
    report_id: Optional[str] = Field(None, description="Report the run was for")
    analysis: Optional[AnalysisResult] = Field(None, description="Analysis written or already stored")
    model_used: Optional[str] = None
    already_processed: bool = False
    retryable: bool = Field(
        False, description="Whether a failed run may succeed on redelivery"
    )
    error: Optional[str] = None
    errors: List[ErrorRecord] = Field(default_factory=list)
    steps: List[StepRecord] = Field(default_factory=list)
    processing_time_ms: float = 0.0
