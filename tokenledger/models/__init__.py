"""
Observation and canonical record models.
"""

from .ohlcv import Candle, Quote
from .records import (
    PROVIDER_FIELDS,
    CoinGeckoFields,
    DailyRecord,
    DexScreenerFields,
    GeckoTerminalFields,
    HourlyRecord,
    ProviderFields,
    UniswapV2Fields,
    UniswapV3Fields,
    day_key,
    hour_key,
    to_utc,
)

__all__ = [
    "Candle",
    "Quote",
    "PROVIDER_FIELDS",
    "ProviderFields",
    "CoinGeckoFields",
    "GeckoTerminalFields",
    "UniswapV2Fields",
    "UniswapV3Fields",
    "DexScreenerFields",
    "DailyRecord",
    "HourlyRecord",
    "day_key",
    "hour_key",
    "to_utc",
]
