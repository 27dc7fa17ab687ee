"""
CoinGecko provider.

Reads the full daily price and volume history for an ERC-20 contract from
the market_chart endpoint. The whole history comes back in one response, so
this adapter always reports a single, final page.
"""

from typing import Any, Dict, List, Optional

from ..models.ohlcv import Candle
from ..providers.base import Page, PagedProvider, opt_float
from ..utils.config import AssetConfig, CoinGeckoConfig
from ..utils.http import HttpClient, HttpResponse


class CoinGeckoProvider(PagedProvider):
    """
    Provider for daily history from CoinGecko.

    Works with both Demo and Pro keys; they differ in host and header name.
    """

    name = "coingecko"
    page_size = None

    def __init__(self, http: HttpClient, asset: AssetConfig, config: CoinGeckoConfig):
        super().__init__(http)
        self.token = asset.require_token()
        self.chain = asset.chain
        self.config = config

    def headers(self) -> Dict[str, str]:
        if not self.config.api_key:
            return {}
        header = "x-cg-pro-api-key" if self.config.is_pro else "x-cg-demo-api-key"
        return {header: self.config.api_key}

    def fetch_page(self, cursor: Optional[Any] = None) -> Page:
        url = f"{self.config.base_url}/api/v3/coins/{self.chain}/contract/{self.token}/market_chart"
        params = {"vs_currency": "usd", "days": "max", "interval": "daily"}

        response = self.http.get(url, params=params, headers=self.headers(), source=self.name)
        self.check_response(response)
        candles = self.parse(response)
        self.logger.info(f"Fetched {len(candles)} daily points for {self.token}")
        return Page(records=candles, done=True)

    def parse(self, response: HttpResponse) -> List[Candle]:
        """
        Parse {"prices": [[ms, price], ...], "total_volumes": [[ms, vol], ...]}.

        Volumes are joined to prices by exact timestamp.
        """
        payload = self.parse_json(response)
        if not isinstance(payload, dict) or not isinstance(payload.get("prices"), list):
            raise self.shape_error(response, "missing 'prices' array")

        volumes: Dict[Any, Optional[float]] = {}
        for row in payload.get("total_volumes") or []:
            if isinstance(row, list) and len(row) >= 2:
                volumes[row[0]] = opt_float(row[1])

        candles = []
        for row in payload["prices"]:
            if not isinstance(row, list) or len(row) < 2:
                # Left for the normalizer to reject and count
                candles.append(Candle(timestamp=repr(row), close=None))
                continue
            ts, price = row[0], row[1]
            candles.append(
                Candle(
                    timestamp=ts / 1000 if isinstance(ts, (int, float)) else ts,
                    close=opt_float(price),
                    volume=volumes.get(ts),
                )
            )
        return candles
