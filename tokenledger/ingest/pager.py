"""
Paging and backoff control.

Drives one provider's paging loop: retries transient failures on the same
cursor with exponential backoff, waits a fixed delay between pages, and
stops on provider exhaustion, soft limit, safety cap or run deadline.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, Optional, TypeVar

from ..providers.base import Page, PagedProvider
from ..utils.config import IngestConfig
from ..utils.exceptions import ProviderError, TransientProviderError
from ..utils.logger import get_logger

T = TypeVar("T")

logger = get_logger("ingest.pager")


class PagerStatus(str, Enum):
    """Paging state. Everything except RUNNING and FAILED is a successful stop."""

    RUNNING = "running"
    STOPPED_EMPTY = "stopped_empty"
    STOPPED_CAP = "stopped_cap"
    STOPPED_SOFT_LIMIT = "stopped_soft_limit"
    FAILED = "failed"


@dataclass
class BackoffPolicy:
    """
    Retry ceiling and delays.

    Attributes:
        max_attempts: Total attempts per call, including the first
        base_delay: Delay before the first retry (seconds)
        max_delay: Upper bound on any single delay (seconds)
    """

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based): base * 2**(attempt-1), capped."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


def call_with_backoff(
    fn: Callable[[], T],
    policy: BackoffPolicy,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "",
) -> T:
    """
    Call fn, retrying TransientProviderError with exponential backoff.

    Any other exception propagates immediately.

    Raises:
        TransientProviderError: The last error once max_attempts is reached
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except TransientProviderError as e:
            if attempt >= policy.max_attempts:
                logger.error(f"{label} giving up after {attempt} attempts: {e}")
                raise
            delay = policy.delay(attempt)
            logger.warning(f"{label} attempt {attempt} failed ({e}); retrying in {delay:.1f}s")
            sleep(delay)


class Pager:
    """
    Paging state machine for one provider run.

    Iterate pages() to drive it; status, rows_fetched and pages_fetched
    reflect progress and the terminal state.
    """

    def __init__(
        self,
        provider: PagedProvider,
        safety_cap: int = 20000,
        policy: Optional[BackoffPolicy] = None,
        page_delay: float = 0.25,
        max_runtime: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            provider: Paged provider to drive
            safety_cap: Hard ceiling on total rows pulled in this run
            policy: Retry policy for transient failures
            page_delay: Fixed wait between pages (seconds)
            max_runtime: Optional deadline (seconds); expiry stops as STOPPED_CAP
            sleep: Blocking wait, injectable for tests
            clock: Monotonic clock, injectable for tests
        """
        self.provider = provider
        self.safety_cap = safety_cap
        self.policy = policy or BackoffPolicy()
        self.page_delay = page_delay
        self.max_runtime = max_runtime
        self.sleep = sleep
        self.clock = clock

        self.status = PagerStatus.RUNNING
        self.rows_fetched = 0
        self.pages_fetched = 0
        self.error: Optional[ProviderError] = None

    @classmethod
    def from_config(cls, provider: PagedProvider, ingest: IngestConfig, **kwargs) -> "Pager":
        return cls(
            provider,
            safety_cap=ingest.safety_cap,
            policy=BackoffPolicy(ingest.max_attempts, ingest.base_delay, ingest.max_delay),
            page_delay=ingest.page_delay,
            max_runtime=ingest.max_runtime,
            **kwargs,
        )

    def _stop(self, status: PagerStatus, reason: str) -> None:
        self.status = status
        logger.info(
            f"[{self.provider.name}] {status.value} after {self.pages_fetched} pages, "
            f"{self.rows_fetched} rows ({reason})"
        )

    def pages(self) -> Iterator[Page]:
        """
        Yield pages until a stop condition.

        Raises:
            ProviderError: Fatal error, or transient error past the retry
                ceiling. status is FAILED when this propagates.
        """
        self.status = PagerStatus.RUNNING
        started = self.clock()
        cursor = None
        name = self.provider.name

        while True:
            if self.pages_fetched:
                self.sleep(self.page_delay)

            try:
                page = call_with_backoff(
                    lambda: self.provider.fetch_page(cursor),
                    self.policy,
                    sleep=self.sleep,
                    label=f"[{name}] page {self.pages_fetched + 1}",
                )
            except ProviderError as e:
                self.status = PagerStatus.FAILED
                self.error = e
                logger.error(f"[{name}] paging failed at cursor {cursor!r}: {e}")
                raise
            self.pages_fetched += 1

            remaining = self.safety_cap - self.rows_fetched
            truncated = len(page.records) > remaining
            if truncated:
                page = Page(records=page.records[:remaining], next_cursor=None, done=False)
            self.rows_fetched += len(page.records)
            logger.debug(f"[{name}] page {self.pages_fetched}: {len(page.records)} rows")

            yield page

            if truncated:
                self._stop(PagerStatus.STOPPED_CAP, f"safety cap {self.safety_cap} reached")
                return
            if page.done:
                if page.soft_limited:
                    self._stop(PagerStatus.STOPPED_SOFT_LIMIT, "provider history window exhausted")
                else:
                    self._stop(PagerStatus.STOPPED_EMPTY, "no further rows")
                return
            if self.rows_fetched >= self.safety_cap:
                self._stop(PagerStatus.STOPPED_CAP, f"safety cap {self.safety_cap} reached")
                return
            if self.max_runtime is not None and self.clock() - started >= self.max_runtime:
                self._stop(PagerStatus.STOPPED_CAP, f"deadline of {self.max_runtime}s reached")
                return
            if page.next_cursor is None:
                logger.warning(f"[{name}] page not marked done but has no cursor")
                self._stop(PagerStatus.STOPPED_EMPTY, "no cursor to continue from")
                return
            cursor = page.next_cursor
