"""
Exceptions raised inside the report processing pipeline.

The ``retryable`` flag tells the consumer whether redelivering the event
could ever succeed.
"""

from typing import Optional


class ProcessingError(Exception):
    """A pipeline step could not complete."""

    retryable = True

    def __init__(self, message: str, *, retryable: Optional[bool] = None) -> None:
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class ReportNotFoundError(ProcessingError):
    """The report referenced by an event does not exist."""

    retryable = False


class InvalidReportError(ProcessingError):
    """The stored report cannot be parsed into a snapshot."""

    retryable = False
