"""
Logging configuration for the enrichment service.

This module provides utilities for configuring logging with structlog.
"""

import logging
import re
import sys
import time
from typing import Any, Dict, Optional

import structlog
from structlog.stdlib import LoggerFactory
from structlog.types import Processor

from adr_enricher.core.config import Environment, Settings, get_settings

_URL_PASSWORD = re.compile(r"(://[^:/@]+:)[^@]*@")


def mask_url(url: str) -> str:
    """Hide the password part of a connection URL."""
    return _URL_PASSWORD.sub(r"\1****@", url)


def configure_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure structured logging for the service.

    This function sets up structlog with appropriate processors
    for the current environment.

    Args:
        settings: Settings to read the log level and environment from
    """
    settings = settings or get_settings()
    log_level = settings.LOG_LEVEL.value

    # Set up standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    def timestamper(logger: Any, name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        """Add ISO-8601 formatted timestamp to the event dict."""
        event_dict["timestamp"] = time.strftime(
            "%Y-%m-%dT%H:%M:%S", time.gmtime()
        )
        return event_dict

    def add_service_info(logger: Any, name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        """Add service information to the event dict."""
        event_dict["service"] = settings.SERVICE_NAME
        event_dict["version"] = settings.VERSION
        return event_dict

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        timestamper,
        add_service_info,
        structlog.processors.format_exc_info,
    ]

    if settings.ENVIRONMENT == Environment.DEVELOPMENT:
        # Pretty output for development
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.extend([
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ])

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
