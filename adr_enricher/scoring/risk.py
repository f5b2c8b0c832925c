"""
Overall risk scoring for analyzed reports.

The score is a deterministic 0-100 value combining severity, priority,
seriousness and the number of identified risk factors.
"""

from typing import Any, Sequence

from adr_enricher.models.analysis import Priority, SeriousnessClassification
from adr_enricher.models.report import SeverityLevel

SEVERITY_SCORES = {
    SeverityLevel.LIFE_THREATENING: 40,
    SeverityLevel.SEVERE: 30,
    SeverityLevel.MODERATE: 15,
    SeverityLevel.MILD: 5,
}
DEFAULT_SEVERITY_SCORE = 15

PRIORITY_SCORES = {
    Priority.CRITICAL: 30,
    Priority.HIGH: 20,
    Priority.MEDIUM: 10,
    Priority.LOW: 5,
}
DEFAULT_PRIORITY_SCORE = 10

SERIOUS_SCORE = 20
RISK_FACTOR_WEIGHT = 2
MAX_RISK_FACTOR_SCORE = 10
MAX_SCORE = 100


def score_components(
        severity: Any,
        priority: Any,
        seriousness: Any,
        risk_factors: Sequence[Any],
) -> int:
    """
    Score the raw components of an analysis.

    Unrecognized severity or priority values fall back to the mid-scale
    default rather than failing.

    Args:
        severity: Severity level (enum member or its string value)
        priority: Priority (enum member or its string value)
        seriousness: Seriousness classification
        risk_factors: Identified risk factors

    Returns:
        Integer score between 0 and 100
    """
    score = SEVERITY_SCORES.get(severity, DEFAULT_SEVERITY_SCORE)
    score += PRIORITY_SCORES.get(priority, DEFAULT_PRIORITY_SCORE)
    if seriousness == SeriousnessClassification.SERIOUS:
        score += SERIOUS_SCORE
    score += min(len(risk_factors) * RISK_FACTOR_WEIGHT, MAX_RISK_FACTOR_SCORE)
    return min(round(score), MAX_SCORE)


def calculate_risk_score(analysis) -> int:
    """Score an ``AnalysisResult``."""
    return score_components(
        analysis.severity.level,
        analysis.priority,
        analysis.seriousness.classification,
        analysis.risk_factors,
    )
