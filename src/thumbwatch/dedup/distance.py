"""Distance metrics for fingerprint comparison."""

import math
from typing import NamedTuple, Optional, Union

import imagehash

from .hash import Fingerprint, hex_to_bits

# Distance reported for fingerprints that cannot be compared.
INCOMPARABLE = math.inf

Distance = Union[int, float]

_HEX_CHARS = frozenset("0123456789abcdefABCDEF")


class PackedFingerprint(NamedTuple):
    """A fingerprint parsed once into an integer, for scanning many groups."""
    digits: int
    value: int


def is_comparable(a: Fingerprint, b: Fingerprint) -> bool:
    """Two fingerprints are comparable when both are non-empty and equally long."""
    return bool(a) and bool(b) and len(a) == len(b)


def _as_image_hash(fingerprint: Fingerprint) -> imagehash.ImageHash:
    return imagehash.ImageHash(hex_to_bits(fingerprint))


def hamming_distance(a: Fingerprint, b: Fingerprint) -> Distance:
    """
    Calculate Hamming distance between two hex fingerprints.

    Args:
        a: First fingerprint
        b: Second fingerprint

    Returns:
        Number of differing bits, or INCOMPARABLE when the fingerprints differ
        in length or are not valid hex. Never raises.
    """
    if not is_comparable(a, b):
        return INCOMPARABLE
    try:
        return int(_as_image_hash(a) - _as_image_hash(b))
    except ValueError:
        return INCOMPARABLE


def pack_fingerprint(fingerprint: Fingerprint) -> Optional[PackedFingerprint]:
    """Parse a fingerprint for repeated comparison; None if empty or not hex."""
    if not fingerprint or not _HEX_CHARS.issuperset(fingerprint):
        return None
    return PackedFingerprint(len(fingerprint), int(fingerprint, 16))


def packed_distance(a: Optional[PackedFingerprint], b: Optional[PackedFingerprint]) -> Distance:
    """Same metric as hamming_distance, on fingerprints packed beforehand."""
    if a is None or b is None or a.digits != b.digits:
        return INCOMPARABLE
    return bin(a.value ^ b.value).count("1")


def within_threshold(a: Optional[PackedFingerprint], b: Optional[PackedFingerprint], threshold: int) -> bool:
    """True when the fingerprints are comparable and at most threshold bits apart."""
    return packed_distance(a, b) <= threshold
