"""Insertion-order eviction keeping tracker state within fixed capacities."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List

from ..logging import get_logger

if TYPE_CHECKING:
    from .tracker import DuplicateTracker

logger = get_logger(__name__)

DEFAULT_MAX_RECORDS = 5000
DEFAULT_MAX_FAILED = 1000


@dataclass(frozen=True)
class EvictionReport:
    """Source keys removed by one enforcement pass."""
    records_evicted: List[str] = field(default_factory=list)
    failures_evicted: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.records_evicted) + len(self.failures_evicted)


class EvictionPolicy:
    """
    Bounds the tracker by insertion order only.

    Records beyond max_records are removed oldest-first one by one. Failed
    keys are cleared in bulk: once more than max_failed are held, the oldest
    half goes in a single batch. Fingerprint content is never looked at.
    """

    def __init__(self, max_records: int = DEFAULT_MAX_RECORDS, max_failed: int = DEFAULT_MAX_FAILED):
        if max_records < 1 or max_failed < 1:
            raise ValueError("Eviction capacities must be positive")
        self.max_records = max_records
        self.max_failed = max_failed

    def records_over_capacity(self, record_count: int) -> int:
        return max(0, record_count - self.max_records)

    def failures_to_evict(self, failed_count: int) -> int:
        if failed_count <= self.max_failed:
            return 0
        return failed_count // 2

    def enforce(self, tracker: "DuplicateTracker") -> EvictionReport:
        """
        Evict from the tracker until both capacities hold.

        Args:
            tracker: Tracker whose state is trimmed in place

        Returns:
            EvictionReport listing the removed source keys
        """
        stats = tracker.stats()

        record_excess = self.records_over_capacity(stats.tracked)
        records = tracker.evict_oldest_records(record_excess) if record_excess else []
        if records:
            logger.info(f"Evicted {len(records)} old entries from tracker (capacity {self.max_records})")

        failure_excess = self.failures_to_evict(stats.failed)
        failures = tracker.evict_oldest_failures(failure_excess) if failure_excess else []
        if failures:
            logger.info(f"Evicted {len(failures)} failed source entries (capacity {self.max_failed})")

        return EvictionReport(records_evicted=records, failures_evicted=failures)
