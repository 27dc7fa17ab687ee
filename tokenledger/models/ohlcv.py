"""
Transient observation models.

Provider adapters produce these; the normalizer consumes them immediately.
Neither is persisted as-is.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Union

RawTimestamp = Union[int, float, str, datetime]


@dataclass
class Candle:
    """
    One OHLC(V) observation for a fixed time bucket from one provider.

    Attributes:
        timestamp: Bucket start as the provider reported it (epoch seconds,
            ISO-8601 string, or datetime). Parsed by the normalizer.
        close: Closing (or single reported) price in USD
        open: Opening price, if the provider reports one
        high: Highest price, if reported
        low: Lowest price, if reported
        volume: USD volume for the bucket, if reported
        metadata: Provider extras that have a slot in the provider's
            namespace (e.g. liquidity figures)
    """

    timestamp: RawTimestamp
    close: Optional[float]
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    volume: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Quote:
    """
    One venue's current quote from an aggregator (hourly path).

    Attributes:
        provider: Provider name (e.g., 'dexscreener')
        price_usd: Last price in USD
        volume_usd: Rolling 24h USD volume, if reported
        pair_address: Venue/pair contract address (lower-case)
        chain_id: Chain slug the pair lives on (e.g., 'ethereum')
        base_token: Base token address (lower-case)
        quote_token: Quote token address (lower-case)
    """

    provider: str
    price_usd: float
    volume_usd: Optional[float] = None
    pair_address: Optional[str] = None
    chain_id: Optional[str] = None
    base_token: Optional[str] = None
    quote_token: Optional[str] = None

    def references_token(self, token_address: str) -> bool:
        token = token_address.lower()
        return token in (self.base_token, self.quote_token)
