"""
Canonical quote selection for the hourly path.

An aggregator query returns several venues. One is picked by precedence:

1. the configured pair address,
2. any pair on the configured chain with the token on either side,
3. the first candidate returned.

Each tier takes its first match; a match with an unusable price is rejected
and selection moves on to the next tier.
"""

import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence

from ..models.ohlcv import Quote
from ..providers.base import QuoteProvider
from ..utils.config import AssetConfig
from ..utils.exceptions import NoQuoteAvailable, ProviderError
from ..utils.logger import get_logger
from .pager import BackoffPolicy, call_with_backoff

logger = get_logger("ingest.quote_selector")


class SelectionTier(str, Enum):
    PAIR = "pair"
    CHAIN_TOKEN = "chain_token"
    FIRST = "first"


@dataclass
class Selection:
    quote: Quote
    tier: SelectionTier
    endpoint: Optional[str] = None


def is_valid_price(price) -> bool:
    return isinstance(price, (int, float)) and math.isfinite(price) and price > 0


def select_quote(
    candidates: Sequence[Quote],
    pair_address: str = "",
    token_address: str = "",
    chain: str = "",
) -> Optional[Selection]:
    """
    Pick one candidate by tier precedence.

    Returns:
        The selection, or None if every tier came up empty or invalid
    """
    pair = (pair_address or "").lower()
    token = (token_address or "").lower()
    chain = (chain or "").lower()

    tiers = [
        (SelectionTier.PAIR, lambda q: bool(pair) and q.pair_address == pair),
        (
            SelectionTier.CHAIN_TOKEN,
            lambda q: bool(token) and (q.chain_id or "").lower() == chain and q.references_token(token),
        ),
        (SelectionTier.FIRST, lambda q: True),
    ]
    for tier, matches in tiers:
        candidate = next((q for q in candidates if matches(q)), None)
        if candidate is None:
            continue
        if not is_valid_price(candidate.price_usd):
            logger.info(
                f"Rejected {tier.value} candidate {candidate.pair_address}: "
                f"invalid price {candidate.price_usd!r}"
            )
            continue
        return Selection(quote=candidate, tier=tier)
    return None


def resolve_quote(
    provider: QuoteProvider,
    asset: AssetConfig,
    policy: Optional[BackoffPolicy] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Selection:
    """
    Try each of the provider's fallback endpoints until one yields a quote.

    Transient failures are retried per endpoint; an endpoint that still fails
    is logged and the next one is tried.

    Raises:
        NoQuoteAvailable: No endpoint produced a valid selection
    """
    policy = policy or BackoffPolicy()
    endpoints: List[str] = provider.endpoints()
    last_error = "no endpoints configured"

    for url in endpoints:
        try:
            candidates = call_with_backoff(
                lambda: provider.fetch_candidates(url), policy, sleep=sleep, label=f"[{provider.name}]"
            )
        except ProviderError as e:
            logger.warning(f"[{provider.name}] endpoint failed {url}: {e}")
            last_error = str(e)
            continue

        if not candidates:
            last_error = f"no pair in response from {url}"
            continue
        selection = select_quote(candidates, asset.pair_address, asset.token_address, asset.chain)
        if selection is None:
            last_error = f"no candidate with a valid price from {url}"
            continue

        selection.endpoint = url
        logger.info(
            f"[{provider.name}] selected {selection.quote.pair_address} "
            f"({selection.tier.value}) price={selection.quote.price_usd}"
        )
        return selection

    raise NoQuoteAvailable(f"{provider.name} failed on all {len(endpoints)} endpoints: {last_error}")
