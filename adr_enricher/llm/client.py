"""
Gemini client for analyzing adverse drug reaction reports.

The client either calls Gemini through the google-genai SDK or, when no
credential is configured or the call fails, produces a rule-based fallback
analysis with exactly the same shape.
"""

import asyncio
import json
import re
from typing import Any, Dict, List, Optional, Sequence

import structlog
from google import genai
from google.genai import types
from pydantic import ValidationError

from adr_enricher.core.config import PLACEHOLDER_API_KEYS, Settings
from adr_enricher.llm.guidance import guidance_for_severity
from adr_enricher.llm.prompts import ANALYSIS_RESPONSE_SCHEMA, PromptTemplates
from adr_enricher.models.analysis import (
    AnalysisOutcome,
    AnalysisResult,
    ImageAnalysis,
    PatientGuidance,
    Priority,
    SeriousnessClassification,
    SeverityAssessment,
    UrgencyLevel,
    utc_now,
)
from adr_enricher.models.processing import MediaFile
from adr_enricher.models.report import ReportData, SeverityLevel
from adr_enricher.scoring.risk import calculate_risk_score

logger = structlog.get_logger(__name__)

FALLBACK_MODEL = "rule-based-fallback"

DEFAULT_RECOMMENDED_ACTIONS = [
    "Review patient history",
    "Consider alternative medications if symptoms persist",
    "Monitor for symptom progression",
]
FALLBACK_RECOMMENDED_ACTIONS = [
    "Clinical review recommended",
    "Consider contacting patient for follow-up",
    "Review medication history",
]


def extract_json(raw: str) -> Optional[Dict[str, Any]]:
    """
    Extract a JSON object from a model response.

    Tries a direct parse, then a fenced code block, then the first
    ``{...}`` span.

    Args:
        raw: Response text

    Returns:
        Parsed object, or None if nothing parseable was found
    """
    if not raw:
        return None

    try:
        parsed = json.loads(raw.strip())
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        pass

    json_match = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", raw, re.DOTALL)
    if json_match:
        try:
            return json.loads(json_match.group(1))
        except json.JSONDecodeError:
            pass

    json_object_match = re.search(r"\{[\s\S]*\}", raw)
    if json_object_match:
        try:
            return json.loads(json_object_match.group(0))
        except json.JSONDecodeError:
            pass

    return None


def _present(data: Dict[str, Any], key: str) -> bool:
    """A key counts as present only if it holds a non-empty value."""
    value = data.get(key)
    return value is not None and value != "" and value != {}


class GeminiClient:
    """Client for analyzing reports with Gemini, with a rule-based fallback."""

    def __init__(
            self,
            api_key: Optional[str] = None,
            text_model: str = "gemini-2.5-flash",
            multimodal_model: str = "gemini-2.5-flash",
            temperature: float = 0.3,
            max_output_tokens: int = 2048,
            timeout: float = 60.0,
            client: Optional[genai.Client] = None,
    ) -> None:
        """
        Initialize the Gemini client.

        Args:
            api_key: Gemini API key; missing or placeholder keys disable live calls
            text_model: Model used for text-only reports
            multimodal_model: Model used when media files are attached
            temperature: Sampling temperature (kept low for consistency)
            max_output_tokens: Response token limit
            timeout: Seconds to wait for a response before falling back
            client: Pre-built SDK client (tests inject a fake here)
        """
        self.text_model = text_model
        self.multimodal_model = multimodal_model
        self.temperature = min(temperature, 0.3)
        self.max_output_tokens = max_output_tokens
        self.timeout = timeout

        key_configured = bool(api_key) and api_key.strip().lower() not in PLACEHOLDER_API_KEYS
        self.is_configured = client is not None or key_configured

        if client is not None:
            self.client = client
        elif key_configured:
            self.client = genai.Client(api_key=api_key)
        else:
            self.client = None
            logger.warning("No valid Gemini API key configured, using fallback analysis")

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiClient":
        api_key = settings.GEMINI_API_KEY.get_secret_value() if settings.GEMINI_API_KEY else None
        return cls(
            api_key=api_key,
            text_model=settings.GEMINI_TEXT_MODEL,
            multimodal_model=settings.GEMINI_MULTIMODAL_MODEL,
            temperature=settings.GEMINI_TEMPERATURE,
            max_output_tokens=settings.GEMINI_MAX_OUTPUT_TOKENS,
            timeout=settings.AI_TIMEOUT_SECONDS,
        )

    async def analyze_report(
            self, report_data: ReportData, media_files: Optional[Sequence[MediaFile]] = None
    ) -> AnalysisOutcome:
        """
        Analyze a side effect report.

        Never raises: an unconfigured client, a failed or timed-out call, or an
        unparseable response all produce the fallback analysis, with the
        reason recorded in ``error``.

        Args:
            report_data: Report fields to analyze
            media_files: Attachments to send as inline parts

        Returns:
            Analysis outcome with the model that produced it
        """
        media_files = list(media_files or [])

        if not self.is_configured:
            logger.info("Using fallback analysis (no API key)")
            return self.fallback_analysis(report_data)

        model_name = self.multimodal_model if media_files else self.text_model

        try:
            prompt = PromptTemplates.report_analysis_prompt(report_data)
            config = types.GenerateContentConfig(
                temperature=self.temperature,
                top_p=0.8,
                max_output_tokens=self.max_output_tokens,
                response_mime_type="application/json",
                response_schema=ANALYSIS_RESPONSE_SCHEMA,
            )

            logger.info("Sending analysis request", model=model_name, media_files=len(media_files))
            response_text = await asyncio.wait_for(
                self._generate(model_name, self._build_contents(prompt, media_files), config),
                timeout=self.timeout,
            )

            raw_analysis = extract_json(response_text)
            if raw_analysis is None:
                raise ValueError(f"Could not extract valid JSON from response: {response_text[:200]}")

            analysis = self.validate_and_enhance(raw_analysis, report_data)
            logger.info("Analysis completed", model=model_name, risk_score=analysis.overall_risk_score)
            return AnalysisOutcome(success=True, analysis=analysis, model_used=model_name)

        except asyncio.TimeoutError:
            error = f"Gemini call timed out after {self.timeout}s"
        except (ValidationError, ValueError) as e:
            error = f"Invalid analysis response: {str(e)}"
        except Exception as e:
            error = str(e) or repr(e)

        logger.error("Gemini analysis failed, using fallback", model=model_name, error=error)
        outcome = self.fallback_analysis(report_data)
        outcome.error = error
        return outcome

    def _build_contents(self, prompt: str, media_files: List[MediaFile]) -> List[types.Part]:
        parts = [types.Part.from_text(text=prompt)]
        for media in media_files:
            if media.data and media.mime_type:
                parts.append(types.Part.from_bytes(data=media.data, mime_type=media.mime_type))
        return parts

    async def _generate(
            self, model_name: str, contents: Any, config: types.GenerateContentConfig
    ) -> str:
        response = await self.client.aio.models.generate_content(
            model=model_name,
            contents=contents,
            config=config,
        )
        return getattr(response, "text", "") or ""

    def validate_and_enhance(self, raw: Dict[str, Any], report_data: ReportData) -> AnalysisResult:
        """
        Fill every missing field of a raw analysis and compute the risk score.

        Args:
            raw: Analysis as returned by the model (possibly partial)
            report_data: Report the analysis is for

        Returns:
            Fully populated analysis

        Raises:
            ValidationError: If present fields hold values outside the schema
        """
        first_effect = report_data.primary_side_effect
        reported_severity = first_effect.severity if first_effect else SeverityLevel.MODERATE

        if _present(raw, "severity"):
            severity = SeverityAssessment.model_validate(raw["severity"])
        else:
            severity = SeverityAssessment(
                level=reported_severity,
                confidence=0.5,
                reasoning="Unable to fully assess severity",
            )

        if _present(raw, "patient_guidance"):
            guidance = PatientGuidance.model_validate(raw["patient_guidance"])
        else:
            guidance = guidance_for_severity(severity.level)

        # Life-threatening reactions always escalate, whatever the model said
        if severity.level == SeverityLevel.LIFE_THREATENING:
            guidance.urgency_level = UrgencyLevel.EMERGENCY
            guidance.can_continue_medication = False
            guidance.should_seek_medical_attention = True

        def pick(key: str, default: Any) -> Any:
            return raw[key] if _present(raw, key) else default

        analysis = AnalysisResult(
            severity=severity,
            priority=pick("priority", Priority.MEDIUM),
            seriousness=pick("seriousness", {
                "classification": SeriousnessClassification.NON_SERIOUS,
                "reasons": [],
            }),
            body_systems_affected=pick("body_systems_affected", []),
            risk_factors=pick("risk_factors", []),
            recommended_actions=pick("recommended_actions", list(DEFAULT_RECOMMENDED_ACTIONS)),
            causality_assessment=pick("causality_assessment", {
                "likelihood": "Possible",
                "reasoning": "Temporal relationship exists but insufficient data for definitive assessment",
            }),
            keywords=pick("keywords", []),
            summary=pick("summary", "Side effect report requires clinical review."),
            medical_terminology=pick("medical_terminology", []),
            patient_guidance=guidance,
            ai_processed=True,
            ai_processed_at=utc_now(),
        )
        analysis.overall_risk_score = calculate_risk_score(analysis)
        return analysis

    def fallback_analysis(self, report_data: ReportData) -> AnalysisOutcome:
        """
        Build a rule-based analysis from the patient-reported severity.

        Args:
            report_data: Report fields to analyze

        Returns:
            Analysis outcome attributed to the fallback model
        """
        side_effect = report_data.primary_side_effect
        severity = side_effect.severity if side_effect else SeverityLevel.MODERATE

        if severity == SeverityLevel.LIFE_THREATENING:
            priority = Priority.CRITICAL
        elif severity == SeverityLevel.SEVERE:
            priority = Priority.HIGH
        else:
            priority = Priority.MEDIUM

        serious = severity in (SeverityLevel.LIFE_THREATENING, SeverityLevel.SEVERE)
        effect_name = side_effect.effect if side_effect else "unspecified"
        keywords = [k for k in (report_data.medication.name, side_effect.effect if side_effect else None) if k]
        body_systems = [side_effect.body_system.value] if side_effect and side_effect.body_system else []

        analysis = AnalysisResult(
            severity=SeverityAssessment(
                level=severity,
                confidence=0.6,
                reasoning="Based on patient-reported severity (AI analysis unavailable)",
            ),
            priority=priority,
            seriousness={
                "classification": (
                    SeriousnessClassification.SERIOUS if serious else SeriousnessClassification.NON_SERIOUS
                ),
                "reasons": ["Patient-reported severe symptoms"] if serious else [],
            },
            body_systems_affected=body_systems,
            risk_factors=[],
            recommended_actions=list(FALLBACK_RECOMMENDED_ACTIONS),
            causality_assessment={
                "likelihood": "Possible",
                "reasoning": "Temporal relationship exists - manual review recommended",
            },
            keywords=keywords,
            summary=(
                f"Patient reported {severity.value.lower()} side effect: {effect_name}. "
                "Manual clinical review recommended."
            ),
            medical_terminology=[],
            patient_guidance=guidance_for_severity(severity),
            ai_processed=False,
            fallback_used=True,
        )
        analysis.overall_risk_score = calculate_risk_score(analysis)

        return AnalysisOutcome(success=True, analysis=analysis, model_used=FALLBACK_MODEL)

    async def analyze_image(self, data: bytes, mime_type: str = "image/jpeg") -> Dict[str, Any]:
        """
        Describe symptoms visible in a single image.

        Args:
            data: Raw image bytes
            mime_type: MIME type of the image

        Returns:
            Dictionary with ``success`` and either ``analysis`` or ``error``
        """
        if not self.is_configured:
            return {"success": False, "error": "Gemini AI not configured"}

        try:
            config = types.GenerateContentConfig(
                temperature=self.temperature,
                max_output_tokens=1024,
                response_mime_type="application/json",
            )
            contents = [
                types.Part.from_text(text=PromptTemplates.image_analysis_prompt()),
                types.Part.from_bytes(data=data, mime_type=mime_type),
            ]
            response_text = await asyncio.wait_for(
                self._generate(self.multimodal_model, contents, config),
                timeout=self.timeout,
            )
            parsed = extract_json(response_text)
            if parsed is None:
                raise ValueError("Could not extract valid JSON from image analysis response")

            return {"success": True, "analysis": ImageAnalysis.model_validate(parsed)}

        except asyncio.TimeoutError:
            logger.error("Image analysis timed out", timeout=self.timeout)
            return {"success": False, "error": f"Gemini call timed out after {self.timeout}s"}
        except Exception as e:
            logger.error("Image analysis error", error=str(e))
            return {"success": False, "error": str(e)}
