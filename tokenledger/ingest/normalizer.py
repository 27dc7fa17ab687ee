"""
Candle normalization.

Turns one provider candle into a canonical key plus that provider's typed
namespace struct. Candles with an unusable price or timestamp are rejected
here and never reach the reconciler.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..models.ohlcv import Candle
from ..models.records import (
    CoinGeckoFields,
    DexScreenerFields,
    GeckoTerminalFields,
    ProviderFields,
    UniswapV2Fields,
    UniswapV3Fields,
    day_key,
    hour_key,
    to_utc,
)
from ..utils.exceptions import ConfigurationError, MalformedRecordError
from ..utils.logger import get_logger

logger = get_logger("ingest.normalizer")

# Epoch values above this are milliseconds (1e11 s is the year 5138)
MILLIS_THRESHOLD = 1e11


@dataclass(frozen=True)
class NormalizedRecord:
    """
    A candle ready to merge.

    Attributes:
        key: Day (YYYY-MM-DD) or hour (YYYY-MM-DD-HH) identity
        provider: Provider name, also the namespace name
        fields: The provider's namespace payload
        timestamp: Parsed bucket time (UTC)
    """

    key: str
    provider: str
    fields: ProviderFields
    timestamp: datetime

    @property
    def price(self) -> float:
        return self.fields.price


def parse_timestamp(value) -> datetime:
    """
    Parse a provider timestamp into an aware UTC datetime.

    Numbers are epoch seconds (or milliseconds when large), strings are
    ISO-8601, naive datetimes are taken as UTC.

    Raises:
        MalformedRecordError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, bool):
        raise MalformedRecordError(f"unparsable timestamp: {value!r}")
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value < 0:
            raise MalformedRecordError(f"unparsable timestamp: {value!r}")
        seconds = value / 1000 if value > MILLIS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise MalformedRecordError(f"unparsable timestamp: {value!r}") from e
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return to_utc(datetime.fromisoformat(text))
        except ValueError as e:
            raise MalformedRecordError(f"unparsable timestamp: {value!r}") from e
    raise MalformedRecordError(f"unparsable timestamp: {value!r}")


def require_price(value: Optional[float]) -> float:
    """Return the price if finite and positive, else raise MalformedRecordError."""
    if value is None:
        raise MalformedRecordError("missing price")
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise MalformedRecordError(f"non-numeric price: {value!r}")
    if not math.isfinite(value) or value <= 0:
        raise MalformedRecordError(f"invalid price: {value!r}")
    return float(value)


def optional_number(value: Optional[float]) -> Optional[float]:
    """Keep optional figures only when finite; never coerce a missing value to zero."""
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def _optional_price(value: Optional[float]) -> Optional[float]:
    number = optional_number(value)
    return number if number is not None and number > 0 else None


def _geckoterminal(candle: Candle, price: float) -> GeckoTerminalFields:
    high = _optional_price(candle.high)
    low = _optional_price(candle.low)
    if high is not None and low is not None and high < low:
        raise MalformedRecordError(f"high {high} < low {low}")
    return GeckoTerminalFields(
        close=price,
        open=_optional_price(candle.open),
        high=high,
        low=low,
        volume_usd=optional_number(candle.volume),
    )


_BUILDERS: Dict[str, Callable[[Candle, float], ProviderFields]] = {
    "coingecko": lambda c, price: CoinGeckoFields(
        price_usd=price, volume_usd=optional_number(c.volume)
    ),
    "geckoterminal": _geckoterminal,
    "uniswap-v2": lambda c, price: UniswapV2Fields(
        price_usd=price,
        total_liquidity_usd=optional_number(c.metadata.get("total_liquidity_usd")),
        total_liquidity_token=optional_number(c.metadata.get("total_liquidity_token")),
    ),
    "uniswap-v3": lambda c, price: UniswapV3Fields(
        price_usd=price, volume_usd=optional_number(c.volume)
    ),
    "dexscreener": lambda c, price: DexScreenerFields(
        price_usd=price,
        volume_usd=optional_number(c.volume),
        pair_address=c.metadata.get("pair_address"),
    ),
}


def normalize(provider_name: str, candle: Candle, granularity: str = "day") -> NormalizedRecord:
    """
    Normalize one candle.

    Args:
        provider_name: Provider that produced the candle
        candle: Raw candle
        granularity: 'day' or 'hour' key

    Returns:
        NormalizedRecord with the provider's namespace payload

    Raises:
        MalformedRecordError: Bad price or timestamp
        ConfigurationError: Unknown provider or granularity
    """
    builder = _BUILDERS.get(provider_name)
    if builder is None:
        raise ConfigurationError(f"No namespace defined for provider '{provider_name}'")
    if granularity not in ("day", "hour"):
        raise ConfigurationError(f"Unknown granularity '{granularity}'")

    price = require_price(candle.close)
    timestamp = parse_timestamp(candle.timestamp)
    key = day_key(timestamp) if granularity == "day" else hour_key(timestamp)
    return NormalizedRecord(
        key=key,
        provider=provider_name,
        fields=builder(candle, price),
        timestamp=timestamp,
    )


def normalize_page(
    provider_name: str,
    candles: Iterable[Candle],
    granularity: str = "day",
) -> Tuple[List[NormalizedRecord], int]:
    """
    Normalize a page, dropping and logging malformed candles.

    Returns:
        (normalized records in input order, number of rejected candles)
    """
    records: List[NormalizedRecord] = []
    rejected = 0
    for candle in candles:
        try:
            records.append(normalize(provider_name, candle, granularity))
        except MalformedRecordError as e:
            rejected += 1
            logger.warning(f"[{provider_name}] rejected candle at {candle.timestamp!r}: {e}")
    return records, rejected
