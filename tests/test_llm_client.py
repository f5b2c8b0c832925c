"""
Unit tests for the Gemini client.

The google-genai SDK client is replaced by a mock so no request leaves
the process.
"""

import asyncio
import json
import unittest
from unittest.mock import patch

from adr_enricher.llm.client import FALLBACK_MODEL, GeminiClient, extract_json
from adr_enricher.llm.guidance import guidance_for_severity
from adr_enricher.llm.prompts import PromptTemplates
from adr_enricher.models.analysis import AnalysisResult, UrgencyLevel
from adr_enricher.models.processing import MediaFile
from adr_enricher.models.report import ReportData, ReportSnapshot
from tests.fakes import fake_genai_client, make_report

LIVE_RESPONSE = {
    "severity": {"level": "Severe", "confidence": 0.85, "reasoning": "Widespread rash with swelling"},
    "priority": "High",
    "seriousness": {"classification": "Serious", "reasons": ["Required medical intervention"]},
    "body_systems_affected": ["Dermatological"],
    "risk_factors": ["Known penicillin allergy"],
    "recommended_actions": ["Discontinue amoxicillin"],
    "causality_assessment": {"likelihood": "Probable", "reasoning": "Onset after first doses"},
    "keywords": ["rash", "amoxicillin"],
    "summary": "Probable hypersensitivity reaction to amoxicillin.",
    "medical_terminology": [{"term": "Drug eruption", "code": "10013687", "system": "MedDRA"}],
}


def report_data(severity: str = "Moderate", **overrides) -> ReportData:
    return ReportData.from_snapshot(ReportSnapshot.model_validate(make_report(severity=severity, **overrides)))


def assert_fully_populated(test: unittest.TestCase, analysis: AnalysisResult) -> None:
    """Every field of the dumped analysis must be present and non-null."""

    def walk(value, path):
        test.assertIsNotNone(value, f"{path} is null")
        if isinstance(value, dict):
            for key, item in value.items():
                walk(item, f"{path}.{key}")
        elif isinstance(value, list):
            for index, item in enumerate(value):
                walk(item, f"{path}[{index}]")

    dumped = analysis.model_dump(mode="json")
    test.assertEqual(set(dumped), set(AnalysisResult.model_fields))
    walk(dumped, "analysis")


class TestExtractJson(unittest.TestCase):
    """Unit tests for JSON extraction from model responses."""

    def test_plain_json(self):
        self.assertEqual(extract_json('{"priority": "Low"}'), {"priority": "Low"})

    def test_fenced_block(self):
        """Test a JSON object wrapped in a markdown code fence."""
        raw = 'Here is the analysis:\n```json\n{"priority": "High"}\n```\nDone.'
        self.assertEqual(extract_json(raw), {"priority": "High"})

    def test_embedded_object(self):
        """Test a JSON object surrounded by prose without a fence."""
        self.assertEqual(extract_json('Result: {"summary": "ok"} end'), {"summary": "ok"})

    def test_unparseable(self):
        self.assertIsNone(extract_json("no json here"))
        self.assertIsNone(extract_json(""))
        self.assertIsNone(extract_json("[1, 2, 3]"))


class TestFallbackAnalysis(unittest.IsolatedAsyncioTestCase):
    """Unit tests for the unconfigured client."""

    def setUp(self):
        self.client = GeminiClient(api_key=None)

    async def test_mild_report_without_ai(self):
        """Test that a mild report gets routine, non-serious, medium-priority analysis."""
        outcome = await self.client.analyze_report(report_data("Mild"))

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.model_used, FALLBACK_MODEL)
        self.assertIsNone(outcome.error)

        analysis = outcome.analysis
        self.assertEqual(analysis.priority.value, "Medium")
        self.assertEqual(analysis.seriousness.classification.value, "Non-serious")
        self.assertEqual(analysis.patient_guidance.urgency_level, UrgencyLevel.ROUTINE)
        self.assertGreaterEqual(analysis.overall_risk_score, 15)
        self.assertLessEqual(analysis.overall_risk_score, 30)
        self.assertFalse(analysis.ai_processed)
        self.assertTrue(analysis.fallback_used)
        assert_fully_populated(self, analysis)

    async def test_life_threatening_report_without_ai(self):
        """Test that a life-threatening report is critical, serious and an emergency."""
        outcome = await self.client.analyze_report(report_data("Life-threatening"))
        analysis = outcome.analysis

        self.assertEqual(analysis.priority.value, "Critical")
        self.assertEqual(analysis.seriousness.classification.value, "Serious")
        self.assertEqual(analysis.seriousness.reasons, ["Patient-reported severe symptoms"])
        self.assertEqual(analysis.patient_guidance.urgency_level, UrgencyLevel.EMERGENCY)
        self.assertFalse(analysis.patient_guidance.can_continue_medication)
        self.assertTrue(analysis.patient_guidance.should_seek_medical_attention)
        self.assertEqual(analysis.overall_risk_score, 90)

    async def test_severe_report_without_ai(self):
        analysis = (await self.client.analyze_report(report_data("Severe"))).analysis
        self.assertEqual(analysis.priority.value, "High")
        self.assertEqual(analysis.seriousness.classification.value, "Serious")
        self.assertEqual(analysis.patient_guidance.urgency_level, UrgencyLevel.URGENT)

    async def test_report_without_side_effects_defaults_to_moderate(self):
        analysis = (await self.client.analyze_report(report_data(side_effects=[]))).analysis
        self.assertEqual(analysis.severity.level.value, "Moderate")
        self.assertEqual(analysis.patient_guidance.urgency_level, UrgencyLevel.SOON)
        assert_fully_populated(self, analysis)

    async def test_placeholder_key_is_not_configured(self):
        """Test that a placeholder key never builds an SDK client."""
        with patch("adr_enricher.llm.client.genai.Client") as mock_client:
            client = GeminiClient(api_key="your-gemini-api-key")
            outcome = await client.analyze_report(report_data())

        mock_client.assert_not_called()
        self.assertFalse(client.is_configured)
        self.assertEqual(outcome.model_used, FALLBACK_MODEL)

    async def test_real_key_builds_sdk_client(self):
        with patch("adr_enricher.llm.client.genai.Client") as mock_client:
            client = GeminiClient(api_key="AIza-real-looking-key")

        mock_client.assert_called_once_with(api_key="AIza-real-looking-key")
        self.assertTrue(client.is_configured)


class TestLiveAnalysis(unittest.IsolatedAsyncioTestCase):
    """Unit tests for analysis through a mocked SDK client."""

    def make_client(self, sdk_client, timeout: float = 5.0) -> GeminiClient:
        return GeminiClient(
            text_model="text-model",
            multimodal_model="vision-model",
            timeout=timeout,
            client=sdk_client,
        )

    async def test_successful_analysis(self):
        sdk = fake_genai_client(json.dumps(LIVE_RESPONSE))
        outcome = await self.make_client(sdk).analyze_report(report_data("Severe"))

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.model_used, "text-model")
        self.assertIsNone(outcome.error)

        analysis = outcome.analysis
        self.assertTrue(analysis.ai_processed)
        self.assertFalse(analysis.fallback_used)
        self.assertEqual(analysis.priority.value, "High")
        self.assertEqual(analysis.causality_assessment.likelihood.value, "Probable")
        # 30 + 20 + 20 + 2
        self.assertEqual(analysis.overall_risk_score, 72)
        # guidance was missing from the response
        self.assertEqual(analysis.patient_guidance.urgency_level, UrgencyLevel.URGENT)
        assert_fully_populated(self, analysis)

        kwargs = sdk.aio.models.generate_content.await_args.kwargs
        self.assertEqual(kwargs["model"], "text-model")
        self.assertEqual(kwargs["config"].response_mime_type, "application/json")
        self.assertLessEqual(kwargs["config"].temperature, 0.3)

    async def test_media_selects_multimodal_model(self):
        """Test that attachments are sent inline to the multimodal model."""
        sdk = fake_genai_client(json.dumps(LIVE_RESPONSE))
        media = [MediaFile(key="uploads/rash.jpg", data=b"\xff\xd8\xff", mime_type="image/jpeg", size=3)]

        outcome = await self.make_client(sdk).analyze_report(report_data(), media)

        self.assertEqual(outcome.model_used, "vision-model")
        contents = sdk.aio.models.generate_content.await_args.kwargs["contents"]
        self.assertEqual(len(contents), 2)

    async def test_partial_response_is_defaulted(self):
        """Test that missing fields are filled from the reported severity."""
        sdk = fake_genai_client(json.dumps({"summary": "Mild rash"}))
        analysis = (await self.make_client(sdk).analyze_report(report_data("Mild"))).analysis

        self.assertEqual(analysis.severity.level.value, "Mild")
        self.assertEqual(analysis.severity.confidence, 0.5)
        self.assertEqual(analysis.priority.value, "Medium")
        self.assertEqual(analysis.seriousness.classification.value, "Non-serious")
        self.assertEqual(len(analysis.recommended_actions), 3)
        self.assertEqual(analysis.causality_assessment.likelihood.value, "Possible")
        self.assertEqual(analysis.patient_guidance.urgency_level, UrgencyLevel.ROUTINE)
        self.assertEqual(analysis.summary, "Mild rash")
        assert_fully_populated(self, analysis)

    async def test_life_threatening_overrides_model_guidance(self):
        """Test that model guidance cannot downgrade a life-threatening reaction."""
        response = dict(LIVE_RESPONSE)
        response["severity"] = {"level": "Life-threatening", "confidence": 0.9, "reasoning": "Anaphylaxis"}
        response["patient_guidance"] = {
            "urgency_level": "routine",
            "recommendation": "Keep going",
            "can_continue_medication": True,
            "should_seek_medical_attention": False,
        }
        sdk = fake_genai_client(json.dumps(response))
        guidance = (await self.make_client(sdk).analyze_report(report_data())).analysis.patient_guidance

        self.assertEqual(guidance.urgency_level, UrgencyLevel.EMERGENCY)
        self.assertFalse(guidance.can_continue_medication)
        self.assertTrue(guidance.should_seek_medical_attention)

    async def test_malformed_response_falls_back(self):
        sdk = fake_genai_client("I am unable to produce JSON today.")
        outcome = await self.make_client(sdk).analyze_report(report_data("Severe"))

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.model_used, FALLBACK_MODEL)
        self.assertIn("Could not extract valid JSON", outcome.error)
        self.assertTrue(outcome.analysis.fallback_used)
        assert_fully_populated(self, outcome.analysis)

    async def test_out_of_schema_value_falls_back(self):
        sdk = fake_genai_client(json.dumps({"priority": "Extreme"}))
        outcome = await self.make_client(sdk).analyze_report(report_data())

        self.assertEqual(outcome.model_used, FALLBACK_MODEL)
        self.assertIsNotNone(outcome.error)

    async def test_sdk_error_falls_back(self):
        sdk = fake_genai_client(side_effect=RuntimeError("429 RESOURCE_EXHAUSTED"))
        outcome = await self.make_client(sdk).analyze_report(report_data("Life-threatening"))

        self.assertEqual(outcome.model_used, FALLBACK_MODEL)
        self.assertEqual(outcome.error, "429 RESOURCE_EXHAUSTED")
        self.assertEqual(outcome.analysis.priority.value, "Critical")

    async def test_timeout_falls_back(self):
        """Test that a hanging call is abandoned after the timeout."""

        async def hang(**kwargs):
            await asyncio.sleep(10)

        sdk = fake_genai_client(side_effect=hang)
        outcome = await self.make_client(sdk, timeout=0.05).analyze_report(report_data())

        self.assertEqual(outcome.model_used, FALLBACK_MODEL)
        self.assertIn("timed out", outcome.error)


class TestImageAnalysis(unittest.IsolatedAsyncioTestCase):
    """Unit tests for single image analysis."""

    async def test_unconfigured(self):
        result = await GeminiClient().analyze_image(b"\x89PNG", "image/png")
        self.assertEqual(result, {"success": False, "error": "Gemini AI not configured"})

    async def test_image_findings(self):
        sdk = fake_genai_client(json.dumps({
            "visible_symptoms": ["erythema"],
            "affected_areas": ["forearm"],
            "severity": "Mild",
            "description": "Localized redness",
            "recommendations": ["Monitor"],
        }))
        result = await GeminiClient(client=sdk).analyze_image(b"\x89PNG", "image/png")

        self.assertTrue(result["success"])
        self.assertEqual(result["analysis"].visible_symptoms, ["erythema"])

    async def test_image_error_does_not_raise(self):
        sdk = fake_genai_client(side_effect=RuntimeError("boom"))
        result = await GeminiClient(client=sdk).analyze_image(b"\x89PNG")
        self.assertEqual(result, {"success": False, "error": "boom"})


class TestGuidanceAndPrompts(unittest.TestCase):
    """Unit tests for guidance defaults and prompt construction."""

    def test_guidance_table(self):
        expected = {
            "Life-threatening": ("emergency", False, True),
            "Severe": ("urgent", False, True),
            "Moderate": ("soon", True, False),
            "Mild": ("routine", True, False),
            "Unknown": ("routine", True, False),
        }
        for severity, (urgency, can_continue, seek) in expected.items():
            guidance = guidance_for_severity(severity)
            self.assertEqual(guidance.urgency_level.value, urgency, severity)
            self.assertEqual(guidance.can_continue_medication, can_continue, severity)
            self.assertEqual(guidance.should_seek_medical_attention, seek, severity)
            self.assertTrue(2 <= len(guidance.next_steps) <= 3)
            self.assertTrue(2 <= len(guidance.warning_signs_to_watch) <= 4)

    def test_guidance_instances_are_independent(self):
        first = guidance_for_severity("Mild")
        first.next_steps.append("changed")
        self.assertNotIn("changed", guidance_for_severity("Mild").next_steps)

    def test_prompt_embeds_report(self):
        prompt = PromptTemplates.report_analysis_prompt(report_data("Severe"))

        self.assertIn("Amoxicillin", prompt)
        self.assertIn("Skin rash", prompt)
        self.assertIn("Severe", prompt)
        self.assertIn("penicillin", prompt)
        self.assertIn("Ear infection", prompt)


if __name__ == "__main__":
    unittest.main()
