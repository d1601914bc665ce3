"""Tests for insertion-order eviction of tracker state."""

import pytest
from hypothesis import given, strategies as st

from thumbwatch.dedup.eviction import EvictionPolicy, EvictionReport
from thumbwatch.dedup.tracker import DuplicateTracker


def distinct_fingerprint(index: int) -> str:
    """Fingerprints far apart from each other (distinct 16-bit blocks)."""
    return f"{index:04x}" * 4 if index % 2 else f"{index:04x}ffff0000abcd"


class TestEvictionPolicy:
    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            EvictionPolicy(max_records=0)
        with pytest.raises(ValueError):
            EvictionPolicy(max_failed=0)

    def test_records_over_capacity(self):
        policy = EvictionPolicy(max_records=5)
        assert policy.records_over_capacity(5) == 0
        assert policy.records_over_capacity(8) == 3

    def test_failures_evicted_in_halves(self):
        policy = EvictionPolicy(max_failed=10)
        assert policy.failures_to_evict(10) == 0
        assert policy.failures_to_evict(11) == 5
        assert policy.failures_to_evict(40) == 20

    def test_report_total(self):
        report = EvictionReport(records_evicted=["a"], failures_evicted=["b", "c"])
        assert report.total == 3


class TestEnforceCapacity:
    def test_noop_under_capacity(self):
        tracker = DuplicateTracker(eviction=EvictionPolicy(max_records=3))
        tracker.classify("a", "0123456789abcdef")
        report = tracker.enforce_capacity()
        assert report.total == 0
        assert tracker.is_tracked("a")

    def test_oldest_record_evicted_and_group_deleted(self):
        """M+1 distinct keys under capacity M leave exactly M, minus the oldest."""
        tracker = DuplicateTracker(threshold=0, eviction=EvictionPolicy(max_records=3))
        fingerprints = ["0123456789abcdef", "fedcba9876543210", "0f0f0f0f0f0f0f0f", "3c3c3c3c3c3c3c3c"]
        for i, fingerprint in enumerate(fingerprints):
            tracker.classify(f"key{i}", fingerprint)

        report = tracker.enforce_capacity()

        assert report.records_evicted == ["key0"]
        assert tracker.stats().tracked == 3
        assert not tracker.is_tracked("key0")
        assert tracker.members(fingerprints[0]) == ()
        assert tracker.stats().groups == 3

    def test_evicted_member_leaves_shared_group(self):
        tracker = DuplicateTracker(eviction=EvictionPolicy(max_records=2))
        tracker.classify("old", "0123456789abcdef")
        tracker.classify("new", "0123456789abcdef")
        tracker.classify("other", "fedcba9876543210")

        tracker.enforce_capacity()

        assert tracker.members("0123456789abcdef") == ("new",)
        assert tracker.lookup("new").member_count == 1

    def test_eviction_uses_insertion_not_access_order(self):
        tracker = DuplicateTracker(eviction=EvictionPolicy(max_records=1))
        tracker.classify("first", "0123456789abcdef")
        tracker.classify("second", "fedcba9876543210")
        tracker.lookup("first")

        tracker.enforce_capacity()

        assert tracker.is_tracked("second")
        assert not tracker.is_tracked("first")

    def test_failed_set_halved_oldest_first(self):
        tracker = DuplicateTracker(eviction=EvictionPolicy(max_failed=4))
        for i in range(5):
            tracker.record_failure(f"bad{i}")

        report = tracker.enforce_capacity()

        assert report.failures_evicted == ["bad0", "bad1"]
        assert tracker.failed_keys() == ("bad2", "bad3", "bad4")

    def test_evicted_key_can_return_as_new(self):
        tracker = DuplicateTracker(eviction=EvictionPolicy(max_records=1))
        tracker.classify("a", "0123456789abcdef")
        tracker.classify("b", "fedcba9876543210")
        tracker.enforce_capacity()

        assert not tracker.has_seen("a")
        membership = tracker.classify("a", "0123456789abcdef")
        assert membership.member_count == 1

    @given(count=st.integers(min_value=0, max_value=40), capacity=st.integers(min_value=1, max_value=20))
    def test_resident_records_never_exceed_capacity(self, count, capacity):
        tracker = DuplicateTracker(eviction=EvictionPolicy(max_records=capacity))
        for i in range(count):
            tracker.classify(f"k{i}", distinct_fingerprint(i + 1))
        tracker.enforce_capacity()

        stats = tracker.stats()
        assert stats.tracked == min(count, capacity)
        assert sum(len(group.source_keys) for group in tracker.groups()) == stats.tracked
        assert all(group.source_keys for group in tracker.groups())
