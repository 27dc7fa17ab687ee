"""
Ingestion engine: normalize, reconcile, page, batch and select quotes.
"""

from .normalizer import NormalizedRecord, normalize, normalize_page
from .reconciler import reconcile, rollup_hourly, mean_price
from .pager import BackoffPolicy, Pager, PagerStatus, call_with_backoff
from .batch import BatchCommitter
from .quote_selector import Selection, SelectionTier, select_quote, resolve_quote
from .pipeline import RunResult, run_backfill, run_backfills, run_hourly

__all__ = [
    "NormalizedRecord",
    "normalize",
    "normalize_page",
    "reconcile",
    "rollup_hourly",
    "mean_price",
    "BackoffPolicy",
    "Pager",
    "PagerStatus",
    "call_with_backoff",
    "BatchCommitter",
    "Selection",
    "SelectionTier",
    "select_quote",
    "resolve_quote",
    "RunResult",
    "run_backfill",
    "run_backfills",
    "run_hourly",
]
