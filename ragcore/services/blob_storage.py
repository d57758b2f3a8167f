"""
Blob storage for raw uploaded files.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

import aiofiles

from ..utils.errors import BlobNotFoundError

logger = logging.getLogger(__name__)


class BlobStorage(ABC):
    """Download-by-path access to uploaded files."""

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Return the object's bytes or raise ``BlobNotFoundError``."""


class LocalBlobStorage(BlobStorage):
    """Files stored under a local base directory."""

    def __init__(self, base_dir: str = "documents"):
        self.base_dir = Path(base_dir).resolve()

    def _resolve(self, path: str) -> Path:
        resolved = (self.base_dir / path).resolve()
        if resolved != self.base_dir and self.base_dir not in resolved.parents:
            raise BlobNotFoundError(path)
        return resolved

    async def download(self, path: str) -> bytes:
        file_path = self._resolve(path)
        if not file_path.is_file():
            raise BlobNotFoundError(path)

        async with aiofiles.open(file_path, 'rb') as f:
            data = await f.read()
        logger.debug(f"Downloaded {len(data)} bytes from {file_path}")
        return data
