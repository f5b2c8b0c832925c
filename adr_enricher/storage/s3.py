"""
S3 blob store for report attachments.

Works against Amazon S3 or any S3-compatible endpoint such as MinIO.
"""

from typing import Optional

import aioboto3
import structlog
from botocore.exceptions import ClientError

from adr_enricher.storage.base import BaseBlobStore, BlobStat, guess_content_type

logger = structlog.get_logger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class S3BlobStore(BaseBlobStore):
    """Blob store backed by an S3 bucket."""

    def __init__(
            self,
            bucket: str,
            endpoint_url: Optional[str] = None,
            aws_access_key_id: Optional[str] = None,
            aws_secret_access_key: Optional[str] = None,
            region: str = "us-east-1",
            session: Optional[aioboto3.Session] = None,
    ) -> None:
        """
        Initialize the S3 blob store.

        Args:
            bucket: Bucket holding the attachments
            endpoint_url: Custom endpoint (MinIO); None for AWS
            aws_access_key_id: Access key (optional, can use environment variables)
            aws_secret_access_key: Secret key (optional, can use environment variables)
            region: Bucket region
            session: Pre-built aioboto3 session
        """
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.region = region
        self.session = session or aioboto3.Session(
            aws_access_key_id=aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key,
            region_name=region,
        )

    def _client(self):
        return self.session.client("s3", endpoint_url=self.endpoint_url, region_name=self.region)

    async def exists(self, key: str) -> bool:
        try:
            async with self._client() as s3:
                await s3.head_object(Bucket=self.bucket, Key=key)
            return True
        except Exception:
            return False

    async def get_bytes(self, key: str) -> bytes:
        async with self._client() as s3:
            try:
                response = await s3.get_object(Bucket=self.bucket, Key=key)
                async with response["Body"] as stream:
                    return await stream.read()
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                    raise FileNotFoundError(f"Attachment not found: {key}") from e
                logger.error("Error retrieving attachment from S3", key=key, error=str(e))
                raise

    async def stat(self, key: str) -> Optional[BlobStat]:
        try:
            async with self._client() as s3:
                head = await s3.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            logger.error("Error getting attachment stat", key=key, error=str(e))
            return None

        return BlobStat(
            size=head.get("ContentLength", 0),
            content_type=head.get("ContentType") or guess_content_type(key),
        )
