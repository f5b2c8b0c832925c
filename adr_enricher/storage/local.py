"""
Local filesystem blob store.

This module provides a blob store that reads attachments from a directory,
used for development and single-host deployments.
"""

import os
from pathlib import Path
from typing import Optional, Union

import aiofiles

from adr_enricher.storage.base import BaseBlobStore, BlobStat, guess_content_type


class LocalBlobStore(BaseBlobStore):
    """Blob store rooted at a local directory."""

    def __init__(self, root: Union[str, Path]) -> None:
        """
        Initialize the local blob store.

        Args:
            root: Directory that object keys are relative to
        """
        self.root = Path(root).resolve()

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents and path != self.root:
            raise FileNotFoundError(f"Attachment key escapes storage root: {key}")
        return path

    async def exists(self, key: str) -> bool:
        try:
            return self._path(key).is_file()
        except OSError:
            return False

    async def get_bytes(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise FileNotFoundError(f"Attachment not found: {key}")

        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def stat(self, key: str) -> Optional[BlobStat]:
        try:
            path = self._path(key)
            return BlobStat(size=os.path.getsize(path), content_type=guess_content_type(key))
        except OSError:
            return None
