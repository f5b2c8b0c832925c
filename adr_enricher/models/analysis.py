"""
Data models for AI analysis results.

Every field carries a non-null default so the structure is fully populated
whether it came from Gemini or from the rule-based fallback.
"""

import enum
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from adr_enricher.models.report import SeverityLevel


class Priority(str, enum.Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class SeriousnessClassification(str, enum.Enum):
    SERIOUS = "Serious"
    NON_SERIOUS = "Non-serious"


class CausalityLikelihood(str, enum.Enum):
    CERTAIN = "Certain"
    PROBABLE = "Probable"
    POSSIBLE = "Possible"
    UNLIKELY = "Unlikely"
    UNASSESSABLE = "Unassessable"


class UrgencyLevel(str, enum.Enum):
    ROUTINE = "routine"
    SOON = "soon"
    URGENT = "urgent"
    EMERGENCY = "emergency"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SeverityAssessment(BaseModel):
    """Clinical severity of the reaction."""

    level: SeverityLevel = Field(SeverityLevel.MODERATE, description="Assessed severity")
    confidence: float = Field(0.5, description="Confidence in the assessment (0.0 to 1.0)")
    reasoning: str = Field("", description="Brief explanation of the assessment")

    @field_validator("confidence", mode="before")
    def clamp_confidence(cls, v: Optional[float]) -> float:
        if v is None:
            return 0.5
        return min(max(float(v), 0.0), 1.0)


class Seriousness(BaseModel):
    classification: SeriousnessClassification = SeriousnessClassification.NON_SERIOUS
    reasons: List[str] = Field(default_factory=list)


class CausalityAssessment(BaseModel):
    likelihood: CausalityLikelihood = CausalityLikelihood.POSSIBLE
    reasoning: str = ""


class MedicalTerm(BaseModel):
    term: str = ""
    code: str = ""
    system: str = ""


class PatientGuidance(BaseModel):
    """Plain-language guidance shown to the reporting patient."""

    urgency_level: UrgencyLevel = UrgencyLevel.ROUTINE
    recommendation: str = ""
    next_steps: List[str] = Field(default_factory=list)
    warning_signs_to_watch: List[str] = Field(default_factory=list)
    can_continue_medication: bool = True
    should_seek_medical_attention: bool = False


class AnalysisResult(BaseModel):
    """Structured severity/priority/causality analysis of one report."""

    severity: SeverityAssessment = Field(default_factory=SeverityAssessment)
    priority: Priority = Priority.MEDIUM
    seriousness: Seriousness = Field(default_factory=Seriousness)
    body_systems_affected: List[str] = Field(default_factory=list)
    risk_factors: List[str] = Field(default_factory=list)
    recommended_actions: List[str] = Field(default_factory=list)
    causality_assessment: CausalityAssessment = Field(default_factory=CausalityAssessment)
    keywords: List[str] = Field(default_factory=list)
    summary: str = ""
    medical_terminology: List[MedicalTerm] = Field(default_factory=list)
    patient_guidance: PatientGuidance = Field(default_factory=PatientGuidance)
    overall_risk_score: int = Field(0, ge=0, le=100)
    ai_processed: bool = False
    ai_processed_at: datetime = Field(default_factory=utc_now)
    fallback_used: bool = False


class AnalysisOutcome(BaseModel):
    """What the AI client hands back to its callers, live or degraded."""

    success: bool = True
    analysis: AnalysisResult
    model_used: str
    processed_at: datetime = Field(default_factory=utc_now)
    error: Optional[str] = Field(None, description="Why the live call was not used, if it failed")


class ImageAnalysis(BaseModel):
    """Findings from a single medical image."""

    visible_symptoms: List[str] = Field(default_factory=list)
    affected_areas: List[str] = Field(default_factory=list)
    severity: str = "None"
    description: str = ""
    recommendations: List[str] = Field(default_factory=list)
