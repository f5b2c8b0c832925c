"""
Prompt templates for interactions with the Gemini model.

This module contains the adverse drug reaction analysis prompt, the
matching response schema, and the single-image symptom prompt.
"""

from typing import Any, Dict, List, Optional

from adr_enricher.models.report import ReportData, SideEffectEntry

SEVERITY_LEVELS = ["Mild", "Moderate", "Severe", "Life-threatening"]
PRIORITIES = ["Low", "Medium", "High", "Critical"]
URGENCY_LEVELS = ["routine", "soon", "urgent", "emergency"]

_STRING_LIST = {"type": "ARRAY", "items": {"type": "STRING"}}

# Structured output schema (OpenAPI subset accepted by Gemini)
ANALYSIS_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "severity": {
            "type": "OBJECT",
            "properties": {
                "level": {"type": "STRING", "enum": SEVERITY_LEVELS},
                "confidence": {"type": "NUMBER"},
                "reasoning": {"type": "STRING"},
            },
            "required": ["level", "confidence", "reasoning"],
        },
        "priority": {"type": "STRING", "enum": PRIORITIES},
        "seriousness": {
            "type": "OBJECT",
            "properties": {
                "classification": {"type": "STRING", "enum": ["Serious", "Non-serious"]},
                "reasons": _STRING_LIST,
            },
            "required": ["classification"],
        },
        "body_systems_affected": _STRING_LIST,
        "risk_factors": _STRING_LIST,
        "recommended_actions": _STRING_LIST,
        "causality_assessment": {
            "type": "OBJECT",
            "properties": {
                "likelihood": {
                    "type": "STRING",
                    "enum": ["Certain", "Probable", "Possible", "Unlikely", "Unassessable"],
                },
                "reasoning": {"type": "STRING"},
            },
        },
        "keywords": _STRING_LIST,
        "summary": {"type": "STRING"},
        "medical_terminology": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "term": {"type": "STRING"},
                    "code": {"type": "STRING"},
                    "system": {"type": "STRING"},
                },
            },
        },
        "patient_guidance": {
            "type": "OBJECT",
            "properties": {
                "urgency_level": {"type": "STRING", "enum": URGENCY_LEVELS},
                "recommendation": {"type": "STRING"},
                "next_steps": _STRING_LIST,
                "warning_signs_to_watch": _STRING_LIST,
                "can_continue_medication": {"type": "BOOLEAN"},
                "should_seek_medical_attention": {"type": "BOOLEAN"},
            },
        },
    },
    "required": ["severity", "priority", "seriousness", "recommended_actions", "summary"],
}


def _or(value: Optional[Any], default: str = "Unknown") -> str:
    if value is None or value == "" or value == []:
        return default
    return str(getattr(value, "value", value))


def _format_side_effect(index: int, side_effect: SideEffectEntry) -> str:
    return (
        f"{index}. Effect: {side_effect.effect}\n"
        f"   - Severity (patient-reported): {_or(side_effect.severity)}\n"
        f"   - Onset: {_or(side_effect.onset)}\n"
        f"   - Body System: {_or(side_effect.body_system, 'Not specified')}\n"
        f"   - Description: {_or(side_effect.description, 'No additional description')}"
    )


class PromptTemplates:
    """Collection of prompt templates for Gemini interactions."""

    @staticmethod
    def report_analysis_prompt(report_data: ReportData) -> str:
        """
        Generate the prompt for analyzing one side effect report.

        Args:
            report_data: Medication, side effects, patient and report details

        Returns:
            Formatted prompt for the Gemini model
        """
        medication = report_data.medication
        usage = report_data.medication_usage
        patient = report_data.patient_info
        details = report_data.report_details

        side_effects: List[str] = [
            _format_side_effect(idx, se) for idx, se in enumerate(report_data.side_effects, start=1)
        ]
        side_effects_str = "\n".join(side_effects) or "No side effects described"

        severity_options = "|".join(SEVERITY_LEVELS)
        priority_options = "|".join(PRIORITIES)
        urgency_options = "|".join(URGENCY_LEVELS)

        weight = "Unknown"
        if patient.weight is not None and patient.weight.value is not None:
            weight = f"{patient.weight.value} {patient.weight.unit}"

        return f"""You are a medical AI assistant specialized in adverse drug reaction (ADR) analysis.
Analyze the following side effect report and provide a structured assessment with patient-friendly guidance.

## REPORT INFORMATION

### Medication
- Name: {_or(medication.name)}
- Generic Name: {_or(medication.generic_name, 'N/A')}
- Category: {_or(medication.category)}
- Dosage: {_or(usage.dosage.amount)}
- Frequency: {_or(usage.dosage.frequency)}
- Route: {_or(usage.dosage.route)}
- Indication: {_or(usage.indication)}
- Start Date: {_or(usage.start_date)}

### Side Effects Reported
{side_effects_str}

### Patient Information
- Age: {_or(patient.age)}
- Gender: {_or(patient.gender)}
- Weight: {weight}
- Medical History: {_or(', '.join(patient.medical_history), 'Not provided')}
- Known Allergies: {_or(', '.join(patient.allergies), 'Not provided')}

### Report Details
- Incident Date: {_or(details.incident_date)}
- Patient-Reported Seriousness: {_or(details.seriousness)}
- Outcome: {_or(details.outcome)}

## ANALYSIS INSTRUCTIONS

Return a JSON object with these keys:
- severity: {{level: {severity_options}, confidence: 0.0-1.0, reasoning}}
- priority: {priority_options}
- seriousness: {{classification: Serious|Non-serious, reasons: [...]}}
- body_systems_affected, risk_factors, recommended_actions, keywords: lists of strings
- causality_assessment: {{likelihood: Certain|Probable|Possible|Unlikely|Unassessable, reasoning}}
- summary: brief 2-3 sentence clinical summary of the case
- medical_terminology: [{{term, code, system (MedDRA|SNOMED|ICD-10)}}]
- patient_guidance: {{urgency_level: {urgency_options}, recommendation, next_steps: [...],
  warning_signs_to_watch: [...], can_continue_medication: bool, should_seek_medical_attention: bool}}

PATIENT GUIDANCE RULES:
- "routine": common side effect, no action needed except monitoring
- "soon": should see a doctor within a few days
- "urgent": should see a doctor within 24-48 hours
- "emergency": seek immediate medical care
For Life-threatening or Severe reactions urgency_level must be "emergency" or "urgent".

IMPORTANT:
- Respond ONLY with valid JSON, no additional text.
- Base severity on clinical significance, not just patient perception.
- The recommendation should be empathetic and in plain language.
- Be specific in warning_signs_to_watch.
- If images are provided, incorporate visual findings into the analysis."""

    @staticmethod
    def image_analysis_prompt() -> str:
        """Generate the prompt for describing symptoms visible in an image."""
        return """Analyze this medical image for visible symptoms or adverse reactions.
Look for: rashes, swelling, discoloration, inflammation, skin changes, or any abnormalities.
Provide a structured analysis in JSON format:
{
  "visible_symptoms": ["List of observed symptoms"],
  "affected_areas": ["Body areas affected"],
  "severity": "None|Mild|Moderate|Severe",
  "description": "Detailed clinical description",
  "recommendations": ["Suggested actions based on visual findings"]
}
If no concerning symptoms are visible, indicate that clearly."""
