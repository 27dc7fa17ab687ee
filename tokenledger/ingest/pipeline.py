"""
Run drivers.

run_backfill wires pager -> normalizer -> reconciler -> batch committer for
one provider. run_backfills runs several of those as independent pipelines.
run_hourly is the single-shot quote path.

Each run returns a RunResult instead of raising for provider and store
failures; unexpected exceptions still propagate.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from ..database.manager import DocumentStore
from ..models.records import HourlyRecord, day_key, hour_key
from ..providers.base import PagedProvider, QuoteProvider
from ..utils.config import AssetConfig, IngestConfig
from ..utils.exceptions import NoQuoteAvailable, ProviderError, StoreWriteError
from ..utils.logger import get_logger
from .batch import BatchCommitter
from .normalizer import normalize_page, optional_number
from .pager import BackoffPolicy, Pager, PagerStatus
from .quote_selector import resolve_quote
from .reconciler import reconcile_document, rollup_document

logger = get_logger("ingest.pipeline")


@dataclass
class RunResult:
    """
    Outcome of one run.

    Attributes:
        provider: Provider name
        ok: False if the run aborted
        status: Terminal paging state (None on the hourly path)
        records_written: Documents committed to the store
        rows_fetched: Rows pulled from the provider
        rejected: Malformed rows dropped by the normalizer
        error: One-line description of the failure, if any
    """

    provider: str
    ok: bool = True
    status: Optional[PagerStatus] = None
    records_written: int = 0
    rows_fetched: int = 0
    rejected: int = 0
    error: Optional[str] = None

    def summary(self) -> str:
        state = self.status.value if self.status else ("ok" if self.ok else "failed")
        text = (
            f"[{self.provider}] {state}: wrote {self.records_written} records "
            f"from {self.rows_fetched} rows ({self.rejected} rejected)"
        )
        if self.error:
            text += f" - error: {self.error}"
        return text


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def run_backfill(
    provider: PagedProvider,
    store: DocumentStore,
    asset: AssetConfig,
    ingest: IngestConfig,
    sleep: Callable[[float], None] = time.sleep,
    now: Optional[datetime] = None,
) -> RunResult:
    """
    Page through one provider's history and merge it into the daily collection.

    Args:
        provider: History provider
        store: Document store
        asset: Asset settings (target collection)
        ingest: Paging, retry and batching limits
        sleep: Blocking wait, injectable for tests
        now: Write-time marker for every record in this run

    Returns:
        RunResult; ok is False on provider fatal errors, exhausted retries
        or store write failures. Flushed chunks stay committed either way.
    """
    written_at = now or _utcnow()
    result = RunResult(provider=provider.name)
    pager = Pager.from_config(provider, ingest, sleep=sleep)
    committer = BatchCommitter(store, asset.daily_collection, ingest.batch_size)

    logger.info(f"[{provider.name}] backfill start ({provider.direction} paging)")
    try:
        with committer:
            for page in pager.pages():
                records, rejected = normalize_page(provider.name, page.records)
                result.rejected += rejected
                for record in records:
                    committer.add(record.key, reconcile_document(record, written_at))
    except (ProviderError, StoreWriteError) as e:
        result.ok = False
        result.status = PagerStatus.FAILED
        result.error = str(e)
    else:
        result.status = pager.status

    result.rows_fetched = pager.rows_fetched
    result.records_written = committer.committed
    if result.ok:
        logger.info(result.summary())
    else:
        logger.error(result.summary())
    return result


def run_backfills(
    providers: Sequence[PagedProvider],
    store: DocumentStore,
    asset: AssetConfig,
    ingest: IngestConfig,
    parallel: bool = False,
    sleep: Callable[[float], None] = time.sleep,
    now: Optional[datetime] = None,
) -> List[RunResult]:
    """
    Run several providers' backfills.

    With parallel=True each provider runs as its own pipeline on a thread
    pool; the store's per-key transactions keep concurrent merges of the
    same day from losing updates. Providers must not share an HTTP client
    when run in parallel.

    Returns:
        One RunResult per provider, in input order
    """
    written_at = now or _utcnow()

    def run(provider: PagedProvider) -> RunResult:
        return run_backfill(provider, store, asset, ingest, sleep=sleep, now=written_at)

    if not parallel or len(providers) < 2:
        return [run(p) for p in providers]

    with ThreadPoolExecutor(max_workers=len(providers), thread_name_prefix="backfill") as pool:
        return list(pool.map(run, providers))


def run_hourly(
    provider: QuoteProvider,
    store: DocumentStore,
    asset: AssetConfig,
    ingest: IngestConfig,
    sleep: Callable[[float], None] = time.sleep,
    now: Optional[datetime] = None,
) -> RunResult:
    """
    Fetch one canonical quote, write the hourly record and roll it into the day.

    The hourly document is overwritten (last-write-wins). The daily rollup
    is cumulative, so it is applied only by the first run for a given hour;
    later runs in the same hour refresh the hourly document alone.
    """
    written_at = now or _utcnow()
    result = RunResult(provider=provider.name)
    policy = BackoffPolicy(ingest.max_attempts, ingest.base_delay, ingest.max_delay)

    try:
        selection = resolve_quote(provider, asset, policy=policy, sleep=sleep)
        # A non-finite volume is dropped rather than summed into the day
        quote = replace(selection.quote, volume_usd=optional_number(selection.quote.volume_usd))
        result.rows_fetched = 1

        hourly = HourlyRecord(
            hour=hour_key(written_at),
            price_usd=quote.price_usd,
            provider=quote.provider,
            token=asset.token_address,
            ts=written_at,
            volume_usd=quote.volume_usd,
            pair_address=quote.pair_address,
        )
        rolled_up = store.get(asset.hourly_collection, hourly.hour) is not None
        store.set(asset.hourly_collection, hourly.hour, hourly.to_dict())
        result.records_written += 1

        if rolled_up:
            logger.info(f"[{provider.name}] hour {hourly.hour} already rolled up; daily record unchanged")
        else:
            day = day_key(written_at)
            store.merge_update(asset.daily_collection, day, rollup_document(day, quote, written_at))
            result.records_written += 1
    except (NoQuoteAvailable, StoreWriteError) as e:
        result.ok = False
        result.error = str(e)
        logger.error(result.summary())
        return result

    logger.info(result.summary())
    return result
