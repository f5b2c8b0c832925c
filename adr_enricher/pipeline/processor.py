"""
Report enrichment pipeline.

This module runs one delivered report through four ordered steps: load the
report, resolve its attachments, analyze it, and persist the analysis. A run
either completes or stops at the first failing step; either way ``process``
returns a structured result instead of raising.
"""

import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Tuple

import structlog
from pydantic import ValidationError

from adr_enricher.core.exceptions import (
    InvalidReportError,
    ProcessingError,
    ReportNotFoundError,
)
from adr_enricher.db.repository import ReportRepository, ReportUpdate
from adr_enricher.llm.client import GeminiClient
from adr_enricher.models.analysis import AnalysisResult
from adr_enricher.models.processing import ErrorRecord, ProcessingResult, StepRecord
from adr_enricher.models.report import BodySystem, ReportData, ReportStatus
from adr_enricher.pipeline.state import ProcessingContext, new_context
from adr_enricher.storage.base import BaseBlobStore

logger = structlog.get_logger(__name__)

Step = Callable[[ProcessingContext], Awaitable[ProcessingContext]]

_BODY_SYSTEMS = {system.value for system in BodySystem}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReportProcessor:
    """Idempotent four-step enrichment of a single report."""

    def __init__(
            self,
            repository: ReportRepository,
            blob_store: BaseBlobStore,
            ai_client: GeminiClient,
            max_attempts: int = 5,
    ) -> None:
        """
        Initialize the processor.

        Args:
            repository: Report and medicine persistence
            blob_store: Attachment storage
            ai_client: Analysis client (live or fallback)
            max_attempts: Failed runs after which a report is no longer retried
        """
        self.repository = repository
        self.blob_store = blob_store
        self.ai_client = ai_client
        self.max_attempts = max_attempts
        self.pipeline = self._build_pipeline()

    def _build_pipeline(self) -> List[Tuple[str, Step]]:
        """
        Build the ordered list of pipeline steps.

        Returns:
            (name, step) pairs in execution order
        """
        return [
            ("fetch_report_data", self.fetch_report_data),
            ("fetch_media_files", self.fetch_media_files),
            ("analyze_with_ai", self.analyze_with_ai),
            ("update_report", self.update_report),
        ]

    async def process(self, report_id: str, force_reprocess: bool = False) -> ProcessingResult:
        """
        Process a report through the pipeline.

        Args:
            report_id: Report to enrich
            force_reprocess: Re-run analysis even if the report was processed before

        Returns:
            Structured success or failure result
        """
        log = logger.bind(report_id=report_id)
        started = time.perf_counter()
        context = new_context(report_id, force_reprocess)

        log.info("Processing report", force_reprocess=force_reprocess)

        for name, step in self.pipeline:
            step_started = time.perf_counter()
            try:
                context = await step(context)
                context["steps"].append(
                    StepRecord(name=name, duration_ms=_elapsed_ms(step_started), success=True)
                )
            except Exception as e:
                context["steps"].append(
                    StepRecord(name=name, duration_ms=_elapsed_ms(step_started), success=False)
                )
                return await self._fail(context, name, e, started)

        analysis = context["analysis"]
        log.info(
            "Report processed",
            already_processed=context["already_processed"],
            model=context["model_used"],
            risk_score=analysis.overall_risk_score if analysis else None,
        )

        return ProcessingResult(
            success=True,
            report_id=report_id,
            analysis=analysis,
            model_used=context["model_used"],
            already_processed=context["already_processed"],
            errors=context["errors"],
            steps=context["steps"],
            processing_time_ms=_elapsed_ms(started),
        )

    async def _fail(
            self, context: ProcessingContext, step: str, error: Exception, started: float
    ) -> ProcessingResult:
        report_id = context["report_id"]
        message = str(error) or repr(error)
        context["errors"].append(
            ErrorRecord(step=step, error=message, timestamp=_utc_now().isoformat())
        )

        retryable = error.retryable if isinstance(error, ProcessingError) else True

        report = context["report"]
        if report is not None and report.metadata.ai_processing_attempts + 1 >= self.max_attempts:
            logger.warning(
                "Maximum processing attempts reached",
                report_id=report_id,
                attempts=report.metadata.ai_processing_attempts + 1,
            )
            retryable = False

        # processed reports are never written again
        if not isinstance(error, ReportNotFoundError) and not context["already_processed"]:
            await self.save_processing_error(report_id, message)

        logger.error(
            "Report processing failed",
            report_id=report_id,
            step=step,
            error=message,
            retryable=retryable,
        )

        return ProcessingResult(
            success=False,
            report_id=report_id,
            retryable=retryable,
            error=message,
            errors=context["errors"],
            steps=context["steps"],
            processing_time_ms=_elapsed_ms(started),
        )

    async def fetch_report_data(self, context: ProcessingContext) -> ProcessingContext:
        """
        Load the report and its medicine.

        Sets ``already_processed`` when the stored report was enriched before
        and no reprocess was requested; the stored analysis becomes the result.
        """
        report_id = context["report_id"]

        try:
            report = await self.repository.find_by_id(report_id)
        except ValidationError as e:
            raise InvalidReportError(f"Report {report_id} is malformed: {e}") from e

        if report is None:
            raise ReportNotFoundError(f"Report not found: {report_id}")

        context["report"] = report

        if report.metadata.ai_processed and not context["force_reprocess"]:
            logger.info("Report already processed, skipping", report_id=report_id)
            context["already_processed"] = True
            try:
                context["analysis"] = AnalysisResult.model_validate(report.metadata.ai_analysis or {})
            except ValidationError as e:
                raise InvalidReportError(f"Stored analysis of report {report_id} is malformed: {e}") from e
            context["model_used"] = report.metadata.ai_model_used
            return context

        if report.medicine:
            try:
                context["medication"] = await self.repository.find_medicine_by_id(report.medicine)
            except Exception as e:
                logger.warning("Could not load medicine", report_id=report_id,
                               medicine=report.medicine, error=str(e))

            if context["medication"] is None:
                logger.warning("Medicine not found, using report fields",
                               report_id=report_id, medicine=report.medicine)

        return context

    async def fetch_media_files(self, context: ProcessingContext) -> ProcessingContext:
        """Resolve attachments; unavailable files are left out."""
        if context["already_processed"]:
            return context

        attachments = context["report"].attachments
        if attachments:
            context["media_files"] = await self.blob_store.get_many_for_processing(attachments)
            logger.info(
                "Attachments resolved",
                report_id=context["report_id"],
                requested=len(attachments),
                fetched=len(context["media_files"]),
            )

        return context

    async def analyze_with_ai(self, context: ProcessingContext) -> ProcessingContext:
        if context["already_processed"]:
            return context

        report_data = ReportData.from_snapshot(context["report"], context["medication"])
        try:
            outcome = await self.ai_client.analyze_report(report_data, context["media_files"])
        except Exception as e:
            logger.error("AI analysis raised, using fallback", report_id=context["report_id"], error=str(e))
            outcome = self.ai_client.fallback_analysis(report_data)
            outcome.error = str(e) or repr(e)

        if outcome.error:
            context["errors"].append(
                ErrorRecord(step="analyze_with_ai", error=outcome.error, timestamp=_utc_now().isoformat())
            )

        context["analysis"] = outcome.analysis
        context["model_used"] = outcome.model_used
        return context

    async def update_report(self, context: ProcessingContext) -> ProcessingContext:
        """Persist the analysis onto the report in one update."""
        if context["already_processed"]:
            return context

        report = context["report"]
        analysis = context["analysis"]
        update = self.build_report_update(context)

        if not await self.repository.apply_update(report.id, update):
            raise ReportNotFoundError(f"Report disappeared before update: {report.id}")

        logger.info("Analysis saved", report_id=report.id, priority=analysis.priority.value)
        return context

    def build_report_update(self, context: ProcessingContext) -> ReportUpdate:
        """
        Build the update that records a completed analysis.

        Args:
            context: Context after a successful analysis step

        Returns:
            Merge patch for the stored report
        """
        report = context["report"]
        analysis = context["analysis"]

        fields = {
            "priority": analysis.priority.value,
            "metadata.ai_processed": True,
            "metadata.ai_processed_at": _utc_now().isoformat(),
            "metadata.ai_model_used": context["model_used"],
            "metadata.ai_analysis": analysis.model_dump(mode="json"),
            "metadata.ai_risk_score": analysis.overall_risk_score,
            "metadata.ai_processing_error": None,
        }

        if report.side_effects:
            fields["side_effects.0.ai_severity"] = analysis.severity.level.value

            body_systems = [s for s in analysis.body_systems_affected if s in _BODY_SYSTEMS]
            if body_systems:
                fields["side_effects.0.body_system"] = body_systems[0]

        if analysis.seriousness and analysis.seriousness.classification:
            fields["report_details.seriousness"] = analysis.seriousness.classification.value

        if report.status == ReportStatus.DRAFT:
            fields["status"] = ReportStatus.SUBMITTED.value

        return ReportUpdate(set_fields=fields)

    async def save_processing_error(self, report_id: str, error: str) -> None:
        """
        Record a failed run on the report.

        Failures to save are logged and not raised.
        """
        update = ReportUpdate(
            set_fields={
                "metadata.ai_processing_error": error,
                "metadata.ai_processing_error_at": _utc_now().isoformat(),
            },
            increments={"metadata.ai_processing_attempts": 1},
        )
        try:
            await self.repository.apply_update(report_id, update)
        except Exception as e:
            logger.error("Failed to save processing error", report_id=report_id, error=str(e))


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
