"""
Message consumer for the ADR enrichment service.

This module wires the queue client to the report processor: it consumes
``report.created`` events, runs each report through the pipeline and
publishes ``report.processed`` when enrichment succeeded.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from pydantic import ValidationError

from adr_enricher.core.config import Settings, get_settings
from adr_enricher.db.repository import SqlReportRepository
from adr_enricher.llm.client import GeminiClient
from adr_enricher.messaging.queue_client import QueueClient
from adr_enricher.models.message import HandlerOutcome, ReportCreatedEvent, ReportProcessedEvent
from adr_enricher.models.processing import ProcessingResult
from adr_enricher.pipeline.processor import ReportProcessor
from adr_enricher.storage import create_blob_store

logger = structlog.get_logger(__name__)


def build_processor(settings: Settings) -> ReportProcessor:
    """
    Create a report processor from settings.

    Args:
        settings: Service settings

    Returns:
        Processor backed by the configured database, blob store and AI client
    """
    logger.info("Building report processor", ai_configured=settings.ai_configured,
                storage=settings.STORAGE_TYPE.value)

    return ReportProcessor(
        repository=SqlReportRepository(settings.DATABASE_URL),
        blob_store=create_blob_store(settings),
        ai_client=GeminiClient.from_settings(settings),
        max_attempts=settings.MAX_PROCESSING_ATTEMPTS,
    )


def build_queue_client(settings: Settings) -> QueueClient:
    return QueueClient(
        url=settings.RABBITMQ_URL,
        prefetch_count=settings.RABBITMQ_PREFETCH_COUNT,
        reconnect_delay=settings.RABBITMQ_RECONNECT_DELAY,
        max_reconnect_attempts=settings.RABBITMQ_MAX_RECONNECT_ATTEMPTS,
    )


class ReportConsumerService:
    """Consumes report.created events and enriches the reports."""

    def __init__(
            self,
            settings: Optional[Settings] = None,
            processor: Optional[ReportProcessor] = None,
            queue: Optional[QueueClient] = None,
    ) -> None:
        """
        Initialize the consumer service.

        Args:
            settings: Service settings
            processor: Report processor; built from settings if omitted
            queue: Queue client; built from settings if omitted
        """
        self.settings = settings or get_settings()
        self.processor = processor or build_processor(self.settings)
        self.queue = queue or build_queue_client(self.settings)
        self._shutting_down = False

    async def start(self) -> None:
        """Connect to the broker and start consuming report.created."""
        await self.queue.connect()
        await self.queue.consume(self.settings.REPORT_CREATED_QUEUE, self.handle_report_created)

        logger.info(
            "Consumer started",
            queue=self.settings.REPORT_CREATED_QUEUE,
            ai_configured=self.processor.ai_client.is_configured,
        )

    async def run(self) -> None:
        """
        Start the service and block until it is shut down.

        Raises:
            ConnectionError: If the broker connection is lost for good
        """
        await self.start()
        await self.queue.wait_closed()

    async def shutdown(self) -> None:
        """Stop taking new work and close the broker connection."""
        if self._shutting_down:
            return

        logger.info("Shutting down consumer")
        self._shutting_down = True
        await self.queue.close()

    async def handle_report_created(self, content: Dict[str, Any]) -> HandlerOutcome:
        """
        Handle one report.created message.

        Args:
            content: Decoded message payload

        Returns:
            How the delivery must be settled
        """
        if self._shutting_down:
            return HandlerOutcome.REQUEUE

        try:
            event = ReportCreatedEvent.model_validate(content)
        except ValidationError as e:
            logger.error("Invalid report.created message", error=str(e), payload=content)
            return HandlerOutcome.REJECT

        result = await self.processor.process(event.report_id, force_reprocess=event.force_reprocess)

        if not result.success:
            return HandlerOutcome.REQUEUE if result.retryable else HandlerOutcome.REJECT

        try:
            await self.publish_report_processed(result)
        except Exception as e:
            # the analysis is already stored; a redelivery publishes again
            logger.error("Failed to publish report.processed", report_id=event.report_id, error=str(e))
            return HandlerOutcome.REQUEUE

        return HandlerOutcome.ACK

    async def publish_report_processed(self, result: ProcessingResult) -> None:
        event = ReportProcessedEvent(
            report_id=result.report_id,
            analysis=result.analysis.model_dump(mode="json") if result.analysis else {},
            processed_at=datetime.now(timezone.utc),
        )
        await self.queue.publish(
            self.settings.REPORT_PROCESSED_QUEUE,
            event.model_dump(mode="json", by_alias=True),
        )
        logger.info("Published report.processed", report_id=result.report_id)


async def publish_report_created(
        queue: QueueClient, settings: Settings, report_id: str, force_reprocess: bool = False
) -> None:
    """
    Publish a report.created event.

    Args:
        queue: Connected queue client
        settings: Service settings
        report_id: Report to (re)process
        force_reprocess: Re-run analysis even if already processed
    """
    event = ReportCreatedEvent(report_id=report_id, force_reprocess=force_reprocess)
    payload = event.model_dump(mode="json", by_alias=True, exclude_defaults=True)
    await queue.publish(settings.REPORT_CREATED_QUEUE, payload)
    logger.info("Published report.created", report_id=report_id, force_reprocess=force_reprocess)


async def run_consumer(service: Optional[ReportConsumerService] = None) -> None:
    """Run the message consumer until it is shut down or cancelled."""
    service = service or ReportConsumerService()

    try:
        await service.run()
    except asyncio.CancelledError:
        logger.info("Consumer cancelled, shutting down")
    finally:
        await service.shutdown()
