"""
Data models for adverse drug reaction reports.

This module defines the read-only projection of a stored report that the
processor loads on every delivery, together with the medicine record it
references. Records are stored as snake_case JSON documents.
"""

import enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SeverityLevel(str, enum.Enum):
    """Severity scale shared by patient reports and AI assessments."""
    MILD = "Mild"
    MODERATE = "Moderate"
    SEVERE = "Severe"
    LIFE_THREATENING = "Life-threatening"


class Onset(str, enum.Enum):
    """Time between first dose and onset of the effect."""
    IMMEDIATE = "Immediate"
    WITHIN_HOURS = "Within hours"
    WITHIN_DAYS = "Within days"
    WITHIN_WEEKS = "Within weeks"
    UNKNOWN = "Unknown"


class BodySystem(str, enum.Enum):
    """Organ systems an effect can be attributed to."""
    GASTROINTESTINAL = "Gastrointestinal"
    CARDIOVASCULAR = "Cardiovascular"
    RESPIRATORY = "Respiratory"
    NERVOUS_SYSTEM = "Nervous System"
    MUSCULOSKELETAL = "Musculoskeletal"
    DERMATOLOGICAL = "Dermatological"
    GENITOURINARY = "Genitourinary"
    ENDOCRINE = "Endocrine"
    HEMATOLOGICAL = "Hematological"
    PSYCHIATRIC = "Psychiatric"
    OCULAR = "Ocular"
    OTIC = "Otic"
    OTHER = "Other"
    UNKNOWN = "Unknown"


class ReportStatus(str, enum.Enum):
    """Workflow status of a report."""
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    UNDER_REVIEW = "Under Review"
    REVIEWED = "Reviewed"
    CLOSED = "Closed"
    REJECTED = "Rejected"


class _Document(BaseModel):
    """Base for stored documents; unknown keys are kept, not rejected."""

    model_config = ConfigDict(extra="allow")


class SideEffectEntry(_Document):
    """A single reported side effect."""

    effect: str = Field(..., description="Patient description of the effect")
    severity: SeverityLevel = Field(
        SeverityLevel.MODERATE, description="Patient-reported severity"
    )
    onset: Onset = Field(Onset.UNKNOWN, description="Onset after starting the medicine")
    body_system: Optional[BodySystem] = Field(None, description="Affected body system")
    description: Optional[str] = Field(None, description="Free-text details")
    ai_severity: Optional[SeverityLevel] = Field(
        None, description="Severity assigned by the enrichment pipeline"
    )


class Weight(_Document):
    value: Optional[float] = None
    unit: str = "kg"


class PatientInfo(_Document):
    """Demographics and history of the affected patient."""

    age: Optional[int] = None
    gender: Optional[str] = None
    weight: Optional[Weight] = None
    allergies: List[str] = Field(default_factory=list)
    medical_history: List[str] = Field(default_factory=list)


class Dosage(_Document):
    amount: Optional[str] = None
    frequency: Optional[str] = None
    route: Optional[str] = None


class MedicationUsage(_Document):
    """How the suspected medicine was taken."""

    indication: Optional[str] = None
    dosage: Dosage = Field(default_factory=Dosage)
    start_date: Optional[str] = None


class ReportDetails(_Document):
    incident_date: Optional[str] = None
    seriousness: Optional[str] = None
    outcome: Optional[str] = None


class AttachmentRef(_Document):
    """Reference to a blob in the object store."""

    key: str = Field(..., description="Object key in the blob store")
    mime_type: Optional[str] = Field(None, description="MIME type recorded at upload")


class ReportMetadata(_Document):
    """Enrichment bookkeeping stored on the report."""

    ai_processed: bool = Field(False, description="Idempotency gate for the pipeline")
    ai_processed_at: Optional[datetime] = None
    ai_processing_attempts: int = 0
    ai_processing_error: Optional[str] = None
    ai_processing_error_at: Optional[datetime] = None
    ai_model_used: Optional[str] = None
    ai_analysis: Optional[Dict[str, Any]] = None
    ai_risk_score: Optional[int] = None


class ReportSnapshot(_Document):
    """Projection of a stored report, read fresh for every processing run."""

    id: str = Field(..., description="Report identifier")
    medicine: Optional[str] = Field(None, description="Identifier of the suspected medicine")
    medicine_name: Optional[str] = None
    medicine_generic_name: Optional[str] = None
    medicine_category: Optional[str] = None
    side_effects: List[SideEffectEntry] = Field(default_factory=list)
    patient_info: PatientInfo = Field(default_factory=PatientInfo)
    medication_usage: MedicationUsage = Field(default_factory=MedicationUsage)
    report_details: ReportDetails = Field(default_factory=ReportDetails)
    attachments: List[AttachmentRef] = Field(default_factory=list)
    status: ReportStatus = ReportStatus.DRAFT
    priority: Optional[str] = None
    metadata: ReportMetadata = Field(default_factory=ReportMetadata)


class Medication(_Document):
    """Medicine record referenced by a report."""

    id: str
    name: str = "Unknown"
    generic_name: Optional[str] = None
    category: Optional[str] = None


class ReportData(BaseModel):
    """Report fields handed to the AI client for one analysis."""

    medication: Medication
    side_effects: List[SideEffectEntry] = Field(default_factory=list)
    patient_info: PatientInfo = Field(default_factory=PatientInfo)
    medication_usage: MedicationUsage = Field(default_factory=MedicationUsage)
    report_details: ReportDetails = Field(default_factory=ReportDetails)

    @classmethod
    def from_snapshot(
            cls, report: ReportSnapshot, medication: Optional[Medication] = None
    ) -> "ReportData":
        """
        Build analysis input from a report and its (optional) medicine record.

        When the medicine could not be resolved, the names denormalised onto
        the report are used instead.
        """
        if medication is None:
            medication = Medication(
                id=report.medicine or "",
                name=report.medicine_name or "Unknown",
                generic_name=report.medicine_generic_name,
                category=report.medicine_category,
            )
        return cls(
            medication=medication,
            side_effects=report.side_effects,
            patient_info=report.patient_info,
            medication_usage=report.medication_usage,
            report_details=report.report_details,
        )

    @property
    def primary_side_effect(self) -> Optional[SideEffectEntry]:
        return self.side_effects[0] if self.side_effects else None
