"""
Data models for messages passed between services.

This module defines the queue payloads exchanged with the reporting API
and with downstream subscribers. Wire keys are camelCase.
"""

import enum
from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class HandlerOutcome(str, enum.Enum):
    """How a consumed message must be settled with the broker."""

    ACK = "ack"
    REQUEUE = "requeue"  # transient failure, deliver again
    REJECT = "reject"  # permanent failure, dead-letter


class ReportCreatedEvent(BaseModel):
    """Published by the reporting API when a report is submitted."""

    model_config = ConfigDict(populate_by_name=True)

    report_id: str = Field(..., alias="reportId", min_length=1, description="Identifier of the new report")
    force_reprocess: bool = Field(
        False, alias="forceReprocess", description="Re-run analysis even if already processed"
    )


class ReportProcessedEvent(BaseModel):
    """Published after a report was enriched successfully."""

    model_config = ConfigDict(populate_by_name=True)

    report_id: str = Field(..., alias="reportId")
    status: str = "processed"
    analysis: Dict[str, Any] = Field(default_factory=dict)
    processed_at: datetime = Field(..., alias="processedAt")
