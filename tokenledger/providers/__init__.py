"""
Market-data provider adapters.

Each adapter knows one provider's request shape, pagination cursor and
response schema, and produces Candle (daily history) or Quote (hourly)
objects.
"""

from typing import List

from .base import BaseProvider, PagedProvider, QuoteProvider, Page, ResponseClass
from .coingecko import CoinGeckoProvider
from .geckoterminal import GeckoTerminalProvider
from .uniswap import UniswapV2Provider, UniswapV3Provider
from .dexscreener import DexScreenerProvider
from ..utils.config import Config
from ..utils.exceptions import ConfigurationError
from ..utils.http import HttpClient

BACKFILL_PROVIDERS: List[str] = ["coingecko", "geckoterminal", "uniswap-v2", "uniswap-v3"]


def build_provider(name: str, http: HttpClient, config: Config) -> PagedProvider:
    """
    Construct a history provider by name.

    Raises:
        ConfigurationError: Unknown provider or missing settings it needs
    """
    if name == "coingecko":
        return CoinGeckoProvider(http, config.asset, config.coingecko)
    if name == "geckoterminal":
        return GeckoTerminalProvider(http, config.asset, config.geckoterminal)
    if name == "uniswap-v2":
        return UniswapV2Provider(http, config.asset, config.thegraph)
    if name == "uniswap-v3":
        return UniswapV3Provider(http, config.asset, config.thegraph)
    raise ConfigurationError(
        f"Unknown provider '{name}'. Choose from: {', '.join(BACKFILL_PROVIDERS)}"
    )


__all__ = [
    "BaseProvider",
    "PagedProvider",
    "QuoteProvider",
    "Page",
    "ResponseClass",
    "CoinGeckoProvider",
    "GeckoTerminalProvider",
    "UniswapV2Provider",
    "UniswapV3Provider",
    "DexScreenerProvider",
    "BACKFILL_PROVIDERS",
    "build_provider",
]
