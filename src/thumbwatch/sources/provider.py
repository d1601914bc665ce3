"""Pixel provider interface.

A provider turns an opaque source key into decoded RGBA pixels. Every way a
fetch can go wrong is reported as FetchDenied or DecodeFailure so that the
dispatcher can record the key as failed and carry on.
"""

import io
from abc import ABC, abstractmethod
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from ..logging import get_logger

logger = get_logger(__name__)


class FetchDenied(Exception):
    """Raised when pixels for a source key cannot be obtained (network, allow-list, size)."""


class DecodeFailure(Exception):
    """Raised when fetched bytes are not a readable image."""


@dataclass(frozen=True)
class PixelBuffer:
    """Row-major RGBA pixels, 4 bytes per pixel."""
    pixels: bytes
    width: int
    height: int


def decode_image_bytes(data: bytes, source_key: str = "<bytes>") -> PixelBuffer:
    """
    Decode encoded image bytes into an RGBA PixelBuffer.

    Raises:
        DecodeFailure: If Pillow cannot read the data
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            rgba = img if img.mode == "RGBA" else img.convert("RGBA")
            return PixelBuffer(pixels=rgba.tobytes(), width=rgba.width, height=rgba.height)
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeFailure(f"Cannot decode image for {source_key}: {exc}") from exc


class PixelProvider(ABC):
    """Supplies pixels for a source key."""

    @abstractmethod
    async def fetch_pixels(self, source_key: str) -> PixelBuffer:
        """
        Fetch and decode the image behind a source key.

        Raises:
            FetchDenied: When the bytes cannot be obtained
            DecodeFailure: When the bytes are not an image
        """

    async def aclose(self) -> None:
        """Release any held resources."""
