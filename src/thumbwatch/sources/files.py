"""Local filesystem pixel provider; source keys are file paths."""

import asyncio
from pathlib import Path
from typing import Optional

from .provider import FetchDenied, PixelBuffer, PixelProvider, decode_image_bytes
from ..logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_BYTES = 10 * 1024 * 1024


class FilePixelProvider(PixelProvider):
    """
    Reads images from disk.

    When root is given, keys resolving outside it are refused, which plays
    the role of an allow-list.
    """

    def __init__(self, root: Optional[Path] = None, max_bytes: int = DEFAULT_MAX_BYTES):
        self.root = Path(root).resolve() if root is not None else None
        self.max_bytes = max_bytes

    def resolve(self, source_key: str) -> Path:
        path = Path(source_key)
        if self.root is not None and not path.is_absolute():
            path = self.root / path
        path = path.resolve()

        if self.root is not None and self.root != path and self.root not in path.parents:
            raise FetchDenied(f"{source_key} is outside {self.root}")
        return path

    def _read(self, source_key: str) -> bytes:
        path = self.resolve(source_key)
        try:
            size = path.stat().st_size
            if not path.is_file():
                raise FetchDenied(f"{source_key} is not a regular file")
            if size > self.max_bytes:
                raise FetchDenied(f"{source_key} is {size} bytes, limit is {self.max_bytes}")
            return path.read_bytes()
        except OSError as exc:
            raise FetchDenied(f"Cannot read {source_key}: {exc}") from exc

    async def fetch_pixels(self, source_key: str) -> PixelBuffer:
        data = await asyncio.to_thread(self._read, source_key)
        logger.debug(f"Read {len(data)} bytes from {source_key}")
        return decode_image_bytes(data, source_key)
