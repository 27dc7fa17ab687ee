"""
DexScreener provider (hourly path).

Returns current quotes for every venue matching a query. The caller picks
one with the canonical quote selector.
"""

from typing import Any, List
from urllib.parse import quote as urlquote

from ..models.ohlcv import Quote
from ..providers.base import QuoteProvider, ResponseClass, opt_float
from ..utils.config import AssetConfig, DexScreenerConfig
from ..utils.http import HttpClient, HttpResponse


def _lower(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else None


class DexScreenerProvider(QuoteProvider):
    """Provider for live venue quotes from DexScreener. No API key."""

    name = "dexscreener"

    def __init__(self, http: HttpClient, asset: AssetConfig, config: DexScreenerConfig):
        super().__init__(http)
        self.asset = asset
        self.base_url = config.base_url

    def endpoints(self) -> List[str]:
        """Pair on chain, pair anywhere, token, then free-text search."""
        urls = []
        pair = self.asset.pair_address
        token = self.asset.token_address
        if pair:
            urls.append(f"{self.base_url}/latest/dex/pairs/{self.asset.chain}/{pair}")
            urls.append(f"{self.base_url}/latest/dex/pairs/{pair}")
        if token:
            urls.append(f"{self.base_url}/latest/dex/tokens/{token}")
            urls.append(f"{self.base_url}/latest/dex/search?q={urlquote(token)}")
        return urls

    def fetch_candidates(self, url: str) -> List[Quote]:
        response = self.http.get(url, source=self.name)
        if self.check_response(response) is ResponseClass.SOFT_LIMIT:
            return []
        return self.parse(response)

    def parse(self, response: HttpResponse) -> List[Quote]:
        """Parse {"pairs": [...]} or {"pair": {...}}."""
        payload = self.parse_json(response)
        if not isinstance(payload, dict):
            raise self.shape_error(response, "body is not an object")
        if isinstance(payload.get("pairs"), list):
            pairs = payload["pairs"]
        elif isinstance(payload.get("pair"), dict):
            pairs = [payload["pair"]]
        else:
            pairs = []
        return [self.parse_pair(p) for p in pairs if isinstance(p, dict)]

    def parse_pair(self, pair: dict) -> Quote:
        volume = pair.get("volume")
        base = pair.get("baseToken") or {}
        quote = pair.get("quoteToken") or {}
        price = opt_float(pair.get("priceUsd"))
        return Quote(
            provider=self.name,
            price_usd=price if price is not None else float("nan"),
            volume_usd=opt_float(volume.get("h24")) if isinstance(volume, dict) else None,
            pair_address=_lower(pair.get("pairAddress")),
            chain_id=pair.get("chainId"),
            base_token=_lower(base.get("address")),
            quote_token=_lower(quote.get("address")),
        )
