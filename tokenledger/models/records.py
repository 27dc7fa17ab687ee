"""
Canonical persisted records.

A DailyRecord holds one provider namespace per contributing provider. Each
namespace is a fixed-field struct, so one provider's write can replace its
own namespace without touching anybody else's.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Optional, Set, Type


def to_utc(ts: datetime) -> datetime:
    """Convert datetime to timezone-aware UTC datetime."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def day_key(ts: datetime) -> str:
    """Daily document id: YYYY-MM-DD (UTC)."""
    return to_utc(ts).strftime("%Y-%m-%d")


def hour_key(ts: datetime) -> str:
    """Hourly document id: YYYY-MM-DD-HH (UTC)."""
    return to_utc(ts).strftime("%Y-%m-%d-%H")


def _format_ts(ts: Optional[datetime]) -> Optional[str]:
    return to_utc(ts).isoformat() if ts is not None else None


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    return to_utc(datetime.fromisoformat(str(value)))


@dataclass
class ProviderFields(ABC):
    """Base for provider namespace structs."""

    provider: ClassVar[str] = ""

    @property
    @abstractmethod
    def price(self) -> Optional[float]:
        pass

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProviderFields":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class CoinGeckoFields(ProviderFields):
    provider: ClassVar[str] = "coingecko"

    price_usd: float
    volume_usd: Optional[float] = None

    @property
    def price(self) -> Optional[float]:
        return self.price_usd


@dataclass
class GeckoTerminalFields(ProviderFields):
    provider: ClassVar[str] = "geckoterminal"

    close: float
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    volume_usd: Optional[float] = None

    @property
    def price(self) -> Optional[float]:
        return self.close


@dataclass
class UniswapV2Fields(ProviderFields):
    provider: ClassVar[str] = "uniswap-v2"

    price_usd: float
    total_liquidity_usd: Optional[float] = None
    total_liquidity_token: Optional[float] = None

    @property
    def price(self) -> Optional[float]:
        return self.price_usd


@dataclass
class UniswapV3Fields(ProviderFields):
    provider: ClassVar[str] = "uniswap-v3"

    price_usd: float
    volume_usd: Optional[float] = None

    @property
    def price(self) -> Optional[float]:
        return self.price_usd


@dataclass
class DexScreenerFields(ProviderFields):
    provider: ClassVar[str] = "dexscreener"

    price_usd: float
    volume_usd: Optional[float] = None
    pair_address: Optional[str] = None

    @property
    def price(self) -> Optional[float]:
        return self.price_usd


PROVIDER_FIELDS: Dict[str, Type[ProviderFields]] = {
    cls.provider: cls
    for cls in (
        CoinGeckoFields,
        GeckoTerminalFields,
        UniswapV2Fields,
        UniswapV3Fields,
        DexScreenerFields,
    )
}


@dataclass
class DailyRecord:
    """
    Cross-provider canonical record for one UTC calendar day.

    Attributes:
        date: Day key (YYYY-MM-DD)
        price_usd: Mean of every provider namespace price
        volume_usd: Cumulative volume from the hourly rollup only
        open, high, low, close: Canonical OHLC
        providers: Provider name -> that provider's namespace struct
        sources: Names of every provider that has written this day
        updated_at: Time of the last write
        first_ts, last_ts: First/last hourly rollup write for the day
        extra: Top-level fields this version does not model, kept verbatim
        unmodeled_providers: Namespaces of providers this version does not know
    """

    date: str
    price_usd: Optional[float] = None
    volume_usd: Optional[float] = None
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    close: Optional[float] = None
    providers: Dict[str, ProviderFields] = field(default_factory=dict)
    sources: Set[str] = field(default_factory=set)
    updated_at: Optional[datetime] = None
    first_ts: Optional[datetime] = None
    last_ts: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    unmodeled_providers: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    _SCALARS: ClassVar[tuple] = ("price_usd", "volume_usd", "open", "high", "low", "close")
    _TIMES: ClassVar[tuple] = ("updated_at", "first_ts", "last_ts")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the stored document shape. None-valued fields are omitted."""
        doc: Dict[str, Any] = dict(self.extra)
        doc["date"] = self.date
        for name in self._SCALARS:
            value = getattr(self, name)
            if value is not None:
                doc[name] = value
        namespaces = dict(self.unmodeled_providers)
        namespaces.update({name: ns.to_dict() for name, ns in self.providers.items()})
        doc["providers"] = dict(sorted(namespaces.items()))
        doc["sources"] = sorted(self.sources)
        for name in self._TIMES:
            value = _format_ts(getattr(self, name))
            if value is not None:
                doc[name] = value
        return doc

    @classmethod
    def from_dict(cls, data: Dict[str, Any], key: Optional[str] = None) -> "DailyRecord":
        """
        Create a DailyRecord from a stored document.

        Args:
            data: Stored document
            key: Document id, used when the document predates the date field
        """
        known = {"date", "providers", "sources"} | set(cls._SCALARS) | set(cls._TIMES)
        providers: Dict[str, ProviderFields] = {}
        extra = {k: v for k, v in data.items() if k not in known}
        unknown_namespaces = {}
        for name, payload in (data.get("providers") or {}).items():
            fields_cls = PROVIDER_FIELDS.get(name)
            if fields_cls is None:
                unknown_namespaces[name] = payload
                continue
            providers[name] = fields_cls.from_dict(payload)
        return cls(
            date=data.get("date") or key,
            providers=providers,
            sources=set(data.get("sources") or []),
            extra=extra,
            unmodeled_providers=unknown_namespaces,
            **{name: data.get(name) for name in cls._SCALARS},
            **{name: _parse_ts(data.get(name)) for name in cls._TIMES},
        )


@dataclass
class HourlyRecord:
    """
    One hourly quote. Re-running the same hour overwrites it.

    Attributes:
        hour: Hour key (YYYY-MM-DD-HH)
        price_usd: Selected venue price
        volume_usd: Venue 24h volume, if reported
        provider: Provider name
        token: Tracked token address
        pair_address: Selected venue/pair address
        ts: Write time
    """

    hour: str
    price_usd: float
    provider: str
    token: str
    ts: datetime
    volume_usd: Optional[float] = None
    pair_address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hour": self.hour,
            "price_usd": self.price_usd,
            "volume_usd": self.volume_usd,
            "provider": self.provider,
            "token": self.token,
            "pair": self.pair_address,
            "ts": _format_ts(self.ts),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HourlyRecord":
        return cls(
            hour=data["hour"],
            price_usd=data["price_usd"],
            provider=data["provider"],
            token=data["token"],
            ts=_parse_ts(data["ts"]),
            volume_usd=data.get("volume_usd"),
            pair_address=data.get("pair"),
        )
