"""Difference-hash fingerprints computed from raw RGBA pixel buffers."""

import math
from typing import Optional, Union

import numpy as np
from PIL import Image

from ..logging import get_logger

logger = get_logger(__name__)

DEFAULT_GRID_SIZE = 32

# Lowercase hex string, 4 bits per digit, final nibble zero-padded on the right.
Fingerprint = str

PixelData = Union[bytes, bytearray, memoryview, np.ndarray]

_HEX_DIGITS = "0123456789abcdef"
_NIBBLE_WEIGHTS = np.array([8, 4, 2, 1], dtype=np.uint8)

# ASCII code -> nibble value, 0xff for anything that is not a hex digit
_NIBBLE_LOOKUP = np.full(256, 0xff, dtype=np.uint8)
for _value, _digit in enumerate(_HEX_DIGITS):
    _NIBBLE_LOOKUP[ord(_digit)] = _value
    _NIBBLE_LOOKUP[ord(_digit.upper())] = _value


def fingerprint_length(grid_size: int = DEFAULT_GRID_SIZE) -> int:
    """Number of hex digits produced for an N×N grid."""
    return math.ceil(grid_size * (grid_size - 1) / 4)


def bits_to_hex(bits: np.ndarray) -> Fingerprint:
    """
    Pack a flat boolean array into hex digits, left to right.

    The final group is zero-padded on the right when the bit count is not a
    multiple of 4.
    """
    flat = np.asarray(bits, dtype=bool).ravel()
    remainder = flat.size % 4
    if remainder:
        flat = np.concatenate([flat, np.zeros(4 - remainder, dtype=bool)])
    nibbles = flat.reshape(-1, 4).astype(np.uint8) @ _NIBBLE_WEIGHTS
    return "".join(_HEX_DIGITS[n] for n in nibbles)


def hex_to_bits(fingerprint: Fingerprint) -> np.ndarray:
    """
    Expand a hex fingerprint into a flat boolean array (4 bits per digit).

    Raises:
        ValueError: If the fingerprint contains a non-hex character
    """
    if not fingerprint:
        return np.zeros(0, dtype=bool)
    try:
        codes = np.frombuffer(fingerprint.encode("ascii"), dtype=np.uint8)
    except UnicodeEncodeError:
        raise ValueError(f"Not a hex fingerprint: {fingerprint[:16]!r}") from None
    nibbles = _NIBBLE_LOOKUP[codes]
    if (nibbles == 0xff).any():
        raise ValueError(f"Not a hex fingerprint: {fingerprint[:16]!r}")
    return ((nibbles[:, None] & _NIBBLE_WEIGHTS) > 0).ravel()


def popcount(fingerprint: Fingerprint) -> int:
    """Number of set bits in a hex fingerprint."""
    return int(np.count_nonzero(hex_to_bits(fingerprint)))


def _to_grid(pixels: PixelData, width: int, height: int, grid_size: int) -> np.ndarray:
    if isinstance(pixels, np.ndarray):
        array = np.ascontiguousarray(pixels, dtype=np.uint8)
    else:
        array = np.frombuffer(pixels, dtype=np.uint8)
    array = array.reshape(height, width, 4)

    if width == grid_size and height == grid_size:
        return array

    # Same role as drawing the source onto a small canvas
    image = Image.fromarray(array)
    resized = image.resize((grid_size, grid_size), Image.Resampling.BILINEAR)
    return np.asarray(resized, dtype=np.uint8)


def compute_fingerprint(
    pixels: PixelData,
    width: int,
    height: int,
    grid_size: int = DEFAULT_GRID_SIZE,
) -> Fingerprint:
    """
    Compute the difference hash of an RGBA pixel buffer.

    The buffer is resampled to a grid_size × grid_size grid, each pixel is
    reduced to the unweighted mean of its R, G and B channels, and one bit is
    emitted per horizontally adjacent pair: 1 when the left pixel is strictly
    brighter than the right one.

    Args:
        pixels: RGBA bytes (row-major, 4 bytes per pixel) or a uint8 array
        width: Source width in pixels
        height: Source height in pixels
        grid_size: Side of the sampling grid

    Returns:
        Hex fingerprint of fingerprint_length(grid_size) characters
    """
    grid = _to_grid(pixels, width, height, grid_size)
    brightness = grid[..., :3].astype(np.float64).mean(axis=2)
    bits = brightness[:, :-1] > brightness[:, 1:]
    fingerprint = bits_to_hex(bits)

    logger.debug(f"Fingerprinted {width}x{height} buffer on {grid_size}x{grid_size} grid: {fingerprint[:16]}...")
    return fingerprint


def fingerprint_image(image: Image.Image, grid_size: int = DEFAULT_GRID_SIZE) -> Fingerprint:
    """Fingerprint a Pillow image of any mode."""
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    return compute_fingerprint(image.tobytes(), image.width, image.height, grid_size)


def is_degenerate(
    fingerprint: Fingerprint,
    tolerance: int = 0,
    bit_count: Optional[int] = None,
) -> bool:
    """
    Tell whether a fingerprint comes from a uniform or near-uniform image.

    Solid-colour placeholders hash to all-zero (or all-one) bits and would pull
    unrelated images into one group, so they are kept out of matching.

    Args:
        fingerprint: Hex fingerprint
        tolerance: How many bits away from all-zero/all-one still count as uniform
        bit_count: Significant bits in the fingerprint; defaults to 4 per digit

    Returns:
        True when the fingerprint should be excluded from grouping
    """
    if not fingerprint:
        return True
    ones = popcount(fingerprint)
    total = bit_count if bit_count is not None else 4 * len(fingerprint)
    return ones <= tolerance or ones >= total - tolerance
