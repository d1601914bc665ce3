"""Bounded-concurrency dispatcher for fingerprinting requests."""

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, Optional, Set, Tuple

from .dedup.hash import Fingerprint
from .logging import get_logger
from .sources.provider import DecodeFailure, FetchDenied

logger = get_logger(__name__)

FingerprintTask = Callable[[str], Awaitable[Optional[Fingerprint]]]


@dataclass(frozen=True)
class FingerprintOutcome:
    """Single resolution of a submitted key: a fingerprint or a failure reason."""
    source_key: str
    fingerprint: Optional[Fingerprint] = None
    failure: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.fingerprint is not None


CompletionHook = Callable[[FingerprintOutcome], None]


class ThrottledDispatcher:
    """
    Runs fingerprint tasks FIFO with at most `concurrency` in flight.

    The backlog is unbounded: requests are delayed, never dropped. Each
    submitted key resolves exactly once to a FingerprintOutcome; a failing
    task yields a failed outcome and never stops the others. When a task
    finishes, its slot is refilled from the backlog straight away, after an
    optional `min_spacing` pause.

    `on_complete` runs synchronously right after the task returns and before
    the future resolves, so whatever it mutates is updated in the same step
    as the result is produced.
    """

    def __init__(
        self,
        task: FingerprintTask,
        concurrency: int = 5,
        min_spacing: float = 0.0,
        timeout: Optional[float] = None,
        on_complete: Optional[CompletionHook] = None,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be positive, got {concurrency}")
        self._task = task
        self.concurrency = concurrency
        self.min_spacing = min_spacing
        self.timeout = timeout
        self._on_complete = on_complete

        self._backlog: Deque[Tuple[str, "asyncio.Future[FingerprintOutcome]"]] = deque()
        self._running: Set["asyncio.Task[None]"] = set()
        self._active = 0
        self.peak_active = 0
        self.completed_count = 0

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def backlog_count(self) -> int:
        return len(self._backlog)

    @property
    def idle(self) -> bool:
        return self._active == 0 and not self._backlog

    def submit(self, source_key: str) -> "asyncio.Future[FingerprintOutcome]":
        """
        Queue a key for fingerprinting. Must be called from a running event loop.

        Returns:
            Future resolving to the key's FingerprintOutcome
        """
        loop = asyncio.get_running_loop()
        future: "asyncio.Future[FingerprintOutcome]" = loop.create_future()
        self._backlog.append((source_key, future))
        self._pump(loop)
        return future

    async def drain(self) -> None:
        """Wait until the backlog is empty and nothing is in flight."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    def _pump(self, loop: asyncio.AbstractEventLoop) -> None:
        while self._active < self.concurrency and self._backlog:
            source_key, future = self._backlog.popleft()
            self._active += 1
            self.peak_active = max(self.peak_active, self._active)

            running = loop.create_task(self._run(source_key, future))
            self._running.add(running)
            running.add_done_callback(self._running.discard)

    async def _run(self, source_key: str, future: "asyncio.Future[FingerprintOutcome]") -> None:
        try:
            outcome = await self._execute(source_key)
            if self._on_complete is not None:
                try:
                    self._on_complete(outcome)
                except Exception as exc:
                    logger.warning(f"Completion hook failed for {source_key[:60]}: {exc}")
            if not future.done():
                future.set_result(outcome)
            self.completed_count += 1

            if self.min_spacing > 0:
                await asyncio.sleep(self.min_spacing)
        finally:
            self._active -= 1
            self._pump(asyncio.get_running_loop())

    async def _execute(self, source_key: str) -> FingerprintOutcome:
        try:
            if self.timeout is None:
                fingerprint = await self._task(source_key)
            elif hasattr(asyncio, "timeout"):
                # Python 3.11+: the task stays in this coroutine, so on_complete
                # follows the computation with no loop step in between
                async with asyncio.timeout(self.timeout):
                    fingerprint = await self._task(source_key)
            else:
                # wait_for wraps the task in its own Task; on_complete then runs
                # one loop step after the computation, still before the future resolves
                fingerprint = await asyncio.wait_for(self._task(source_key), self.timeout)
        except (FetchDenied, DecodeFailure) as exc:
            logger.warning(f"Fingerprinting failed for {source_key[:60]}: {exc}")
            return FingerprintOutcome(source_key, failure=str(exc))
        except asyncio.TimeoutError:
            logger.warning(f"Fingerprinting timed out for {source_key[:60]} after {self.timeout}s")
            return FingerprintOutcome(source_key, failure=f"timed out after {self.timeout}s")
        except Exception as exc:
            logger.warning(f"Unexpected error fingerprinting {source_key[:60]}: {exc!r}")
            return FingerprintOutcome(source_key, failure=repr(exc))

        if fingerprint is None:
            return FingerprintOutcome(source_key, failure="no fingerprint produced")
        return FingerprintOutcome(source_key, fingerprint=fingerprint)
