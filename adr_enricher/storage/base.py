"""
Base blob store for report attachments.

This module defines the abstract base class for blob stores. Backends
implement the three primitives; the batch fetch used by the processor is
shared.
"""

import abc
import mimetypes
from typing import Iterable, List, NamedTuple, Optional

import structlog

from adr_enricher.models.processing import MediaFile
from adr_enricher.models.report import AttachmentRef

logger = structlog.get_logger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


class BlobStat(NamedTuple):
    size: int
    content_type: Optional[str]


def guess_content_type(key: str) -> Optional[str]:
    """Guess a MIME type from the object key."""
    mime_type, _ = mimetypes.guess_type(key)
    return mime_type


class BaseBlobStore(abc.ABC):
    """Abstract base class for attachment blob stores."""

    @abc.abstractmethod
    async def exists(self, key: str) -> bool:
        """
        Check whether a blob exists.

        Implementations return False on any lookup error instead of raising.
        """

    @abc.abstractmethod
    async def get_bytes(self, key: str) -> bytes:
        """
        Read a blob.

        Raises:
            FileNotFoundError: If there is no blob under the key
        """

    @abc.abstractmethod
    async def stat(self, key: str) -> Optional[BlobStat]:
        """Return size and stored content type, or None if unavailable."""

    async def get_many_for_processing(self, refs: Iterable[AttachmentRef]) -> List[MediaFile]:
        """
        Resolve attachment references to media files.

        Missing blobs and individual fetch errors are logged and skipped;
        only the successfully resolved subset is returned.

        Args:
            refs: Attachment references from the report

        Returns:
            Media files that could be fetched
        """
        files: List[MediaFile] = []

        for ref in refs:
            try:
                if not await self.exists(ref.key):
                    logger.warning("Attachment not found", key=ref.key)
                    continue

                data = await self.get_bytes(ref.key)
                stat = await self.stat(ref.key)

                mime_type = (
                    ref.mime_type
                    or (stat.content_type if stat else None)
                    or DEFAULT_MIME_TYPE
                )
                files.append(
                    MediaFile(
                        key=ref.key,
                        data=data,
                        mime_type=mime_type,
                        size=stat.size if stat else len(data),
                    )
                )
            except Exception as e:
                logger.error("Error fetching attachment", key=ref.key, error=str(e))

        return files
