"""Blob stores for report attachments."""

from adr_enricher.core.config import Settings, StorageType
from adr_enricher.storage.base import BaseBlobStore, BlobStat
from adr_enricher.storage.local import LocalBlobStore
from adr_enricher.storage.s3 import S3BlobStore


def create_blob_store(settings: Settings) -> BaseBlobStore:
    """
    Create the blob store selected by ``STORAGE_TYPE``.

    Args:
        settings: Service settings

    Returns:
        Configured blob store
    """
    if settings.STORAGE_TYPE == StorageType.LOCAL:
        return LocalBlobStore(settings.LOCAL_STORAGE_PATH)

    return S3BlobStore(
        bucket=settings.S3_BUCKET,
        endpoint_url=settings.S3_ENDPOINT_URL,
        aws_access_key_id=settings.S3_ACCESS_KEY_ID,
        aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY.get_secret_value(),
        region=settings.S3_REGION,
    )


__all__ = ["BaseBlobStore", "BlobStat", "LocalBlobStore", "S3BlobStore", "create_blob_store"]
