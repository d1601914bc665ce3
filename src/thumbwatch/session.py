"""Top-level driver: source keys in, duplicate memberships out."""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .config import Settings
from .dedup.hash import Fingerprint, compute_fingerprint
from .dedup.tracker import DuplicateListener, DuplicateTracker, GroupMembership, MembershipStatus
from .dispatch import FingerprintOutcome, ThrottledDispatcher
from .logging import get_logger
from .sources.provider import PixelProvider
from .store import FingerprintStore

logger = get_logger(__name__)


@dataclass
class SessionReport:
    """Result of one process() batch."""
    memberships: Dict[str, GroupMembership] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    @property
    def duplicates(self) -> Dict[str, GroupMembership]:
        return {key: m for key, m in self.memberships.items() if m.is_duplicate}


class DuplicateSession:
    """
    Wires a pixel provider, a dispatcher and a tracker together.

    Nothing starts on construction; the provider, tracker and store are
    supplied by the caller and owned by it.
    """

    def __init__(
        self,
        provider: PixelProvider,
        tracker: Optional[DuplicateTracker] = None,
        settings: Optional[Settings] = None,
        store: Optional[FingerprintStore] = None,
        origin: Optional[str] = None,
    ):
        self.settings = settings or Settings()
        self.provider = provider
        self.tracker = tracker or DuplicateTracker.from_settings(self.settings)
        self.store = store
        self.origin = origin or "session"

        self.dispatcher = ThrottledDispatcher(
            self._fingerprint_source,
            concurrency=self.settings.concurrency,
            min_spacing=self.settings.min_task_spacing,
            timeout=self.settings.fetch_timeout,
            on_complete=self._apply_outcome,
        )
        self._in_flight: Dict[str, "asyncio.Future[FingerprintOutcome]"] = {}

    def add_listener(self, listener: DuplicateListener) -> None:
        self.tracker.add_listener(listener)

    async def _fingerprint_source(self, source_key: str) -> Fingerprint:
        buffer = await self.provider.fetch_pixels(source_key)
        return compute_fingerprint(buffer.pixels, buffer.width, buffer.height, self.settings.grid_size)

    def _apply_outcome(self, outcome: FingerprintOutcome) -> None:
        self._in_flight.pop(outcome.source_key, None)

        if not outcome.succeeded:
            self.tracker.record_failure(outcome.source_key)
            return

        membership = self.tracker.classify(outcome.source_key, outcome.fingerprint)

        if self.store is not None and membership.group_key is not None:
            try:
                self.store.upsert(outcome.fingerprint, self.origin)
            except (OSError, ValueError) as exc:
                logger.warning(f"Fingerprint store update failed for {outcome.source_key[:60]}: {exc}")

    def submit(self, source_key: str) -> Optional["asyncio.Future[FingerprintOutcome]"]:
        """
        Queue a key unless it is already known.

        Returns:
            The key's pending future, or None when the key is already tracked
            or recorded as failed
        """
        pending = self._in_flight.get(source_key)
        if pending is not None:
            return pending
        if self.tracker.has_seen(source_key):
            return None

        future = self.dispatcher.submit(source_key)
        self._in_flight[source_key] = future
        return future

    def membership(self, outcome: FingerprintOutcome) -> Optional[GroupMembership]:
        """Current membership behind an outcome; uniform images report as ignored."""
        membership = self.tracker.lookup(outcome.source_key)
        if membership is None and outcome.succeeded and self.tracker.is_degenerate(outcome.fingerprint):
            return GroupMembership(outcome.source_key, None, 0, MembershipStatus.IGNORED)
        return membership

    async def process(self, source_keys: Iterable[str]) -> SessionReport:
        """
        Enforce capacity, then fingerprint and classify every new key.

        Args:
            source_keys: Keys that became eligible, in submission order

        Returns:
            SessionReport for the keys of this batch
        """
        self.tracker.enforce_capacity()

        report = SessionReport()
        futures: Dict[str, "asyncio.Future[FingerprintOutcome]"] = {}
        for source_key in source_keys:
            if source_key in futures:
                continue
            future = self.submit(source_key)
            if future is None:
                report.skipped.append(source_key)
            else:
                futures[source_key] = future

        outcomes = await asyncio.gather(*futures.values())
        for outcome in outcomes:
            if outcome.succeeded:
                membership = self.membership(outcome)
                if membership is not None:
                    report.memberships[outcome.source_key] = membership
            else:
                report.failures[outcome.source_key] = outcome.failure or "unknown failure"

        stats = self.tracker.stats()
        logger.info(
            f"Processed {len(futures)} keys ({len(report.failures)} failed, {len(report.skipped)} skipped); "
            f"tracking {stats.tracked} in {stats.groups} groups, {stats.duplicate_groups} with duplicates"
        )
        return report

    async def aclose(self) -> None:
        await self.dispatcher.drain()
        await self.provider.aclose()
