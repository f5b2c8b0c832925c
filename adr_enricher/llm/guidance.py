"""
Default patient guidance keyed by severity.

Used whenever Gemini does not supply guidance and by the rule-based
fallback. Wording may change; the urgency, continuation and escalation
flags per tier may not.
"""

import copy
from typing import Any

from adr_enricher.models.analysis import PatientGuidance, UrgencyLevel
from adr_enricher.models.report import SeverityLevel

_GUIDANCE_BY_SEVERITY = {
    SeverityLevel.LIFE_THREATENING: dict(
        urgency_level=UrgencyLevel.EMERGENCY,
        recommendation=(
            "This is a serious reaction that requires immediate medical attention. "
            "Please stop taking the medication and seek emergency care right away."
        ),
        next_steps=[
            "Stop taking the medication immediately",
            "Call emergency services or go to the nearest emergency room",
            "Bring your medication information with you",
        ],
        warning_signs_to_watch=[
            "Difficulty breathing",
            "Swelling of face, lips, or throat",
            "Severe chest pain",
            "Loss of consciousness",
        ],
        can_continue_medication=False,
        should_seek_medical_attention=True,
    ),
    SeverityLevel.SEVERE: dict(
        urgency_level=UrgencyLevel.URGENT,
        recommendation=(
            "This is a significant reaction that needs medical evaluation soon. "
            "Please contact your doctor within 24 hours or visit an urgent care facility."
        ),
        next_steps=[
            "Consider stopping the medication until you speak with your doctor",
            "Contact your doctor or healthcare provider today",
            "Document your symptoms and when they started",
        ],
        warning_signs_to_watch=[
            "Symptoms getting worse",
            "New symptoms appearing",
            "Fever or chills",
            "Severe pain or discomfort",
        ],
        can_continue_medication=False,
        should_seek_medical_attention=True,
    ),
    SeverityLevel.MODERATE: dict(
        urgency_level=UrgencyLevel.SOON,
        recommendation=(
            "This side effect should be discussed with your doctor. While not an "
            "emergency, please schedule an appointment within the next few days."
        ),
        next_steps=[
            "Continue your medication unless symptoms worsen significantly",
            "Schedule an appointment with your doctor within a few days",
            "Keep track of your symptoms",
        ],
        warning_signs_to_watch=[
            "Symptoms becoming more severe",
            "Symptoms lasting longer than expected",
            "New symptoms developing",
        ],
        can_continue_medication=True,
        should_seek_medical_attention=False,
    ),
}

_ROUTINE_GUIDANCE = dict(
    urgency_level=UrgencyLevel.ROUTINE,
    recommendation=(
        "This appears to be a minor side effect that is commonly associated with this "
        "medication. Continue taking your medication as prescribed and monitor your symptoms."
    ),
    next_steps=[
        "Continue your medication as prescribed",
        "Monitor your symptoms",
        "Mention this at your next regular appointment",
    ],
    warning_signs_to_watch=[
        "Symptoms becoming more severe",
        "Symptoms not improving over time",
    ],
    can_continue_medication=True,
    should_seek_medical_attention=False,
)


def guidance_for_severity(severity: Any) -> PatientGuidance:
    """
    Build patient guidance for a severity level.

    Mild and any unrecognized level map to routine guidance.

    Args:
        severity: Severity level (enum member or its string value)

    Returns:
        A fresh ``PatientGuidance`` instance
    """
    template = _GUIDANCE_BY_SEVERITY.get(severity, _ROUTINE_GUIDANCE)
    return PatientGuidance(**copy.deepcopy(template))
