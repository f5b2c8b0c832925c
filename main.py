"""
Main module for the ADR enrichment service.

This module serves as the entry point for the consumer that enriches
submitted adverse drug reaction reports with an AI severity analysis.
It also offers operator commands to process or republish a single report
and to create the database tables.
"""

import argparse
import asyncio
import json
import signal
import sys

import structlog

from adr_enricher.core.config import get_settings
from adr_enricher.db.repository import SqlReportRepository
from adr_enricher.message_consumer import (
    ReportConsumerService,
    build_processor,
    build_queue_client,
    publish_report_created,
    run_consumer,
)
from adr_enricher.utils.logging import configure_logging

logger = structlog.get_logger(__name__)


async def run_consume() -> None:
    """Run the consumer until SIGINT/SIGTERM."""
    service = ReportConsumerService(get_settings())

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: asyncio.ensure_future(_stop(service, s)))

    await run_consumer(service)


async def _stop(service: ReportConsumerService, sig: signal.Signals) -> None:
    logger.info("Signal received", signal=sig.name)
    await service.shutdown()


async def run_process(report_id: str, force: bool) -> int:
    """
    Process one report directly, without the broker.

    Returns:
        Exit status
    """
    processor = build_processor(get_settings())
    result = await processor.process(report_id, force_reprocess=force)
    print(json.dumps(result.model_dump(mode="json"), indent=2))
    return 0 if result.success else 1


async def run_publish(report_id: str, force: bool) -> None:
    settings = get_settings()
    queue = build_queue_client(settings)

    await queue.connect()
    try:
        await publish_report_created(queue, settings, report_id, force_reprocess=force)
    finally:
        await queue.close()


def init_db() -> None:
    SqlReportRepository(get_settings().DATABASE_URL).init_db()


def main() -> None:
    """Entry point for the service."""
    parser = argparse.ArgumentParser(description="ADR Report Enricher")
    subparsers = parser.add_subparsers(dest="mode")

    subparsers.add_parser("consume", help="Consume report.created events (default)")

    process_parser = subparsers.add_parser("process", help="Process a single report and print the result")
    process_parser.add_argument("--report-id", required=True, help="Report to process")
    process_parser.add_argument("--force", action="store_true", help="Reprocess even if already analyzed")

    publish_parser = subparsers.add_parser("publish", help="Publish a report.created event")
    publish_parser.add_argument("--report-id", required=True, help="Report to enqueue")
    publish_parser.add_argument("--force", action="store_true", help="Ask the consumer to reprocess")

    subparsers.add_parser("init-db", help="Create database tables")

    args = parser.parse_args()
    configure_logging()

    mode = args.mode or "consume"
    exit_code = 0

    try:
        if mode == "consume":
            asyncio.run(run_consume())
        elif mode == "process":
            exit_code = asyncio.run(run_process(args.report_id, args.force))
        elif mode == "publish":
            asyncio.run(run_publish(args.report_id, args.force))
        elif mode == "init-db":
            init_db()
    except KeyboardInterrupt:
        logger.info("Service interrupted")
    except ConnectionError as e:
        logger.critical("Broker connection lost", error=str(e))
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
