"""
Record reconciliation.

Merges a normalized observation into whatever is already stored for the
same day. Two paths:

- reconcile: multi-provider backfill. Replaces only the incoming provider's
  namespace; idempotent per provider and independent of write order for
  namespaces, sources, canonical price and high/low.
- rollup_hourly: the hourly path's daily OHLC rollup. Cumulative: volume is
  added on every call, so each hour must be rolled up exactly once.
"""

import math
from dataclasses import replace
from datetime import datetime
from typing import Dict, Optional

from ..models.ohlcv import Quote
from ..models.records import DailyRecord, DexScreenerFields, ProviderFields
from .normalizer import NormalizedRecord, optional_number


def mean_price(providers: Dict[str, ProviderFields]) -> Optional[float]:
    """Arithmetic mean of every finite namespace price, or None if there are none."""
    prices = [
        ns.price
        for ns in providers.values()
        if isinstance(ns.price, (int, float)) and math.isfinite(ns.price)
    ]
    if not prices:
        return None
    return sum(prices) / len(prices)


def _previous_bound(record: DailyRecord, name: str) -> Optional[float]:
    """Canonical high/low, falling back to open/close for records seeded without them."""
    value = getattr(record, name)
    if value is not None:
        return value
    seeds = [v for v in (record.open, record.close) if v is not None]
    if not seeds:
        return None
    return max(seeds) if name == "high" else min(seeds)


def reconcile(
    incoming: NormalizedRecord,
    previous: Optional[DailyRecord],
    written_at: datetime,
) -> DailyRecord:
    """
    Merge one normalized record into the previous record for its day.

    Args:
        incoming: Normalized observation
        previous: Stored record for incoming.key, or None if new
        written_at: Write-time marker stored as updated_at

    Returns:
        The merged DailyRecord (previous is not modified)
    """
    base = previous if previous is not None else DailyRecord(date=incoming.key)

    providers = dict(base.providers)
    providers[incoming.provider] = incoming.fields

    price = incoming.price
    fields = incoming.fields
    incoming_open = getattr(fields, "open", None) or price
    incoming_high = max(getattr(fields, "high", None) or price, price)
    incoming_low = min(getattr(fields, "low", None) or price, price)

    prev_high = _previous_bound(base, "high")
    prev_low = _previous_bound(base, "low")

    return replace(
        base,
        date=base.date or incoming.key,
        providers=providers,
        price_usd=mean_price(providers),
        open=base.open if base.open is not None else incoming_open,
        close=base.close if base.close is not None else price,
        high=incoming_high if prev_high is None else max(prev_high, incoming_high),
        low=incoming_low if prev_low is None else min(prev_low, incoming_low),
        sources=set(base.sources) | {incoming.provider},
        updated_at=written_at,
    )


def rollup_hourly(
    day: str,
    quote: Quote,
    previous: Optional[DailyRecord],
    written_at: datetime,
) -> DailyRecord:
    """
    Fold one hourly quote into the day's OHLC.

    Same namespace/price/high/low handling as reconcile, plus: close is the
    latest price, volume_usd is added to the stored volume, and
    first_ts/last_ts track the first and latest rollup.
    """
    fields = DexScreenerFields(
        price_usd=quote.price_usd,
        volume_usd=optional_number(quote.volume_usd),
        pair_address=quote.pair_address,
    )
    incoming = NormalizedRecord(key=day, provider=quote.provider, fields=fields, timestamp=written_at)
    merged = reconcile(incoming, previous, written_at)

    previous_volume = optional_number(previous.volume_usd) if previous is not None else None
    return replace(
        merged,
        close=quote.price_usd,
        volume_usd=(previous_volume or 0.0) + (optional_number(quote.volume_usd) or 0.0),
        first_ts=previous.first_ts if previous is not None and previous.first_ts else written_at,
        last_ts=written_at,
    )


def reconcile_document(incoming: NormalizedRecord, written_at: datetime):
    """Store merge function applying reconcile to a stored document."""

    def merge(document):
        previous = DailyRecord.from_dict(document, key=incoming.key) if document else None
        return reconcile(incoming, previous, written_at).to_dict()

    return merge


def rollup_document(day: str, quote: Quote, written_at: datetime):
    """Store merge function applying rollup_hourly to a stored document."""

    def merge(document):
        previous = DailyRecord.from_dict(document, key=day) if document else None
        return rollup_hourly(day, quote, previous, written_at).to_dict()

    return merge
