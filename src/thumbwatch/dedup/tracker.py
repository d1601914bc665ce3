"""Session-scoped duplicate tracking keyed by opaque source keys."""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from .distance import PackedFingerprint, pack_fingerprint, within_threshold
from .eviction import EvictionPolicy, EvictionReport
from .hash import Fingerprint, is_degenerate
from ..logging import get_logger

logger = get_logger(__name__)

DEFAULT_THRESHOLD = 5


class MembershipStatus(str, Enum):
    MATCHED = "matched"
    UNIQUE = "unique"
    IGNORED = "ignored"


@dataclass(frozen=True)
class SourceRecord:
    """A successfully fingerprinted source and the group it was filed under."""
    source_key: str
    fingerprint: Fingerprint
    group_key: Fingerprint
    inserted_at: float


@dataclass(frozen=True)
class GroupMembership:
    """Outcome of classifying one source key."""
    source_key: str
    group_key: Optional[Fingerprint]
    member_count: int
    status: MembershipStatus

    @property
    def is_duplicate(self) -> bool:
        return self.member_count > 1


@dataclass(frozen=True)
class DuplicateEvent:
    """Emitted whenever a classification leaves a group with more than one member."""
    source_key: str
    group_key: Fingerprint
    member_count: int


@dataclass(frozen=True)
class DuplicateGroup:
    group_key: Fingerprint
    source_keys: Tuple[str, ...]

    @property
    def member_count(self) -> int:
        return len(self.source_keys)


@dataclass(frozen=True)
class TrackerStats:
    tracked: int
    failed: int
    groups: int
    duplicate_groups: int


DuplicateListener = Callable[[DuplicateEvent], None]


class DuplicateTracker:
    """
    Owns the forward map (source key -> record), the group map
    (group key -> member keys) and the failed-source set.

    All mutations are synchronous, so a caller on a single event loop never
    observes the two maps out of step with each other.
    """

    def __init__(
        self,
        threshold: int = DEFAULT_THRESHOLD,
        eviction: Optional[EvictionPolicy] = None,
        degenerate_tolerance: int = 0,
        bit_count: Optional[int] = None,
    ):
        self.threshold = threshold
        self.eviction = eviction or EvictionPolicy()
        self.degenerate_tolerance = degenerate_tolerance
        self.bit_count = bit_count

        # dicts keep insertion order; member dicts are used as ordered sets
        self._records: Dict[str, SourceRecord] = {}
        self._groups: Dict[Fingerprint, Dict[str, None]] = {}
        # parsed group keys, inserted and removed together with _groups
        self._packed_keys: Dict[Fingerprint, Optional[PackedFingerprint]] = {}
        self._failed: Dict[str, None] = {}
        self._listeners: List[DuplicateListener] = []

    @classmethod
    def from_settings(cls, settings) -> "DuplicateTracker":
        return cls(
            threshold=settings.hamming_threshold,
            eviction=EvictionPolicy(settings.max_records, settings.max_failed),
            degenerate_tolerance=settings.degenerate_tolerance,
            bit_count=settings.fingerprint_bits,
        )

    def add_listener(self, listener: DuplicateListener) -> None:
        self._listeners.append(listener)

    def is_degenerate(self, fingerprint: Fingerprint) -> bool:
        return is_degenerate(fingerprint, self.degenerate_tolerance, self.bit_count)

    def find_group(
        self,
        fingerprint: Fingerprint,
        packed: Optional[PackedFingerprint] = None,
    ) -> Optional[Fingerprint]:
        """
        Find the group a fingerprint belongs to.

        Exact key match first, then the first group key in insertion order
        within the threshold. This is first-acceptable, not nearest.
        """
        if fingerprint in self._groups:
            return fingerprint

        if packed is None:
            packed = pack_fingerprint(fingerprint)
        for group_key, group_packed in self._packed_keys.items():
            if within_threshold(packed, group_packed, self.threshold):
                return group_key
        return None

    def classify(self, source_key: str, fingerprint: Fingerprint) -> GroupMembership:
        """
        File a freshly fingerprinted source key under a duplicate group.

        Args:
            source_key: Opaque identity of the image instance
            fingerprint: Its hex fingerprint

        Returns:
            GroupMembership with the resulting group size
        """
        if self.is_degenerate(fingerprint):
            logger.debug(f"Ignoring uniform fingerprint for {source_key}")
            return GroupMembership(source_key, None, 0, MembershipStatus.IGNORED)

        if source_key in self._records:
            # A later result for the same key replaces the earlier one
            self._detach(source_key)

        packed = pack_fingerprint(fingerprint)
        group_key = self.find_group(fingerprint, packed)
        matched = group_key is not None
        if group_key is None:
            group_key = fingerprint

        self._failed.pop(source_key, None)
        self._records[source_key] = SourceRecord(
            source_key=source_key,
            fingerprint=fingerprint,
            group_key=group_key,
            inserted_at=time.monotonic(),
        )
        if group_key not in self._groups:
            self._packed_keys[group_key] = packed
        members = self._groups.setdefault(group_key, {})
        members[source_key] = None

        member_count = len(members)
        status = MembershipStatus.MATCHED if matched else MembershipStatus.UNIQUE
        membership = GroupMembership(source_key, group_key, member_count, status)

        if member_count > 1:
            logger.info(f"Duplicate found: {source_key} joins group {group_key[:16]}... ({member_count} members)")
            self._notify(DuplicateEvent(source_key, group_key, member_count))

        return membership

    def record_failure(self, source_key: str) -> bool:
        """
        Remember that a source key could not be fingerprinted.

        Returns:
            False when the key is already tracked with a fingerprint
        """
        if source_key in self._records:
            logger.debug(f"Ignoring failure for already tracked {source_key}")
            return False
        self._failed[source_key] = None
        return True

    def is_tracked(self, source_key: str) -> bool:
        return source_key in self._records

    def is_failed(self, source_key: str) -> bool:
        return source_key in self._failed

    def has_seen(self, source_key: str) -> bool:
        return source_key in self._records or source_key in self._failed

    def record(self, source_key: str) -> Optional[SourceRecord]:
        return self._records.get(source_key)

    def lookup(self, source_key: str) -> Optional[GroupMembership]:
        """Current membership of a tracked key, for re-applying presentation."""
        record = self._records.get(source_key)
        if record is None:
            return None
        member_count = len(self._groups[record.group_key])
        status = MembershipStatus.MATCHED if member_count > 1 else MembershipStatus.UNIQUE
        return GroupMembership(source_key, record.group_key, member_count, status)

    def members(self, group_key: Fingerprint) -> Tuple[str, ...]:
        return tuple(self._groups.get(group_key, ()))

    def groups(self) -> Iterator[DuplicateGroup]:
        for group_key, members in self._groups.items():
            yield DuplicateGroup(group_key, tuple(members))

    def duplicate_groups(self) -> List[DuplicateGroup]:
        return [group for group in self.groups() if group.member_count > 1]

    def failed_keys(self) -> Tuple[str, ...]:
        return tuple(self._failed)

    def stats(self) -> TrackerStats:
        return TrackerStats(
            tracked=len(self._records),
            failed=len(self._failed),
            groups=len(self._groups),
            duplicate_groups=sum(1 for members in self._groups.values() if len(members) > 1),
        )

    def enforce_capacity(self) -> EvictionReport:
        return self.eviction.enforce(self)

    def evict_oldest_records(self, count: int) -> List[str]:
        """Remove up to count records, oldest inserted first."""
        victims = list(self._records)[:max(0, count)]
        for source_key in victims:
            self._detach(source_key)
        return victims

    def evict_oldest_failures(self, count: int) -> List[str]:
        """Remove up to count failed keys, oldest inserted first."""
        victims = list(self._failed)[:max(0, count)]
        for source_key in victims:
            del self._failed[source_key]
        return victims

    def reset(self) -> None:
        self._records.clear()
        self._groups.clear()
        self._packed_keys.clear()
        self._failed.clear()
        logger.info("Tracker state cleared")

    def _detach(self, source_key: str) -> None:
        record = self._records.pop(source_key)
        members = self._groups.get(record.group_key)
        if members is None:
            return
        members.pop(source_key, None)
        if not members:
            del self._groups[record.group_key]
            self._packed_keys.pop(record.group_key, None)

    def _notify(self, event: DuplicateEvent) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as exc:
                logger.warning(f"Duplicate listener failed for {event.source_key}: {exc}")
