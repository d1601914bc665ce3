"""Fingerprinting, matching and bounded duplicate tracking."""

from .hash import Fingerprint, compute_fingerprint, fingerprint_image, is_degenerate
from .distance import INCOMPARABLE, hamming_distance
from .tracker import DuplicateEvent, DuplicateTracker, GroupMembership, MembershipStatus
from .eviction import EvictionPolicy, EvictionReport

__all__ = [
    "Fingerprint",
    "compute_fingerprint",
    "fingerprint_image",
    "is_degenerate",
    "INCOMPARABLE",
    "hamming_distance",
    "DuplicateEvent",
    "DuplicateTracker",
    "GroupMembership",
    "MembershipStatus",
    "EvictionPolicy",
    "EvictionReport",
]
