"""
GeckoTerminal provider.

Pages backward through a pool's daily OHLCV using before_timestamp. The
public tier only serves a limited window (about 180 days) and answers 401
past it; that status is a soft limit, not an authorization failure.
"""

from typing import Any, Dict, List, Optional

from ..models.ohlcv import Candle
from ..providers.base import Page, PagedProvider, ResponseClass, opt_float
from ..utils.config import AssetConfig, GeckoTerminalConfig
from ..utils.http import HttpClient, HttpResponse


class GeckoTerminalProvider(PagedProvider):
    """Provider for daily pool candles from GeckoTerminal."""

    name = "geckoterminal"
    page_size = 1000
    direction = "backward"
    soft_limit_statuses = frozenset({401})

    def __init__(self, http: HttpClient, asset: AssetConfig, config: GeckoTerminalConfig):
        super().__init__(http)
        self.pair = asset.require_pair()
        self.network = config.network
        self.config = config

    def headers(self) -> Dict[str, str]:
        return {"x-api-key": self.config.api_key} if self.config.api_key else {}

    def fetch_page(self, cursor: Optional[Any] = None) -> Page:
        url = f"{self.config.base_url}/networks/{self.network}/pools/{self.pair}/ohlcv/day"
        params: Dict[str, Any] = {"limit": self.page_size, "currency": "usd"}
        if cursor is not None:
            params["before_timestamp"] = cursor

        response = self.http.get(url, params=params, headers=self.headers(), source=self.name)
        if self.check_response(response) is ResponseClass.SOFT_LIMIT:
            return Page(done=True, soft_limited=True)

        rows = self.extract_rows(response)
        candles = [self.parse_row(row) for row in rows]

        timestamps = [c.timestamp for c in candles if isinstance(c.timestamp, (int, float))]
        next_cursor = min(timestamps) if timestamps else None
        done = self.is_last_page(rows) or next_cursor is None
        if not done and cursor is not None and next_cursor >= cursor:
            # Provider ignored before_timestamp; stop rather than loop
            self.logger.warning(f"Cursor did not advance past {cursor}; stopping")
            done = True

        return Page(records=candles, next_cursor=None if done else next_cursor, done=done)

    def extract_rows(self, response: HttpResponse) -> List[list]:
        """Parse {"data": {"attributes": {"ohlcv_list": [[ts, o, h, l, c, v], ...]}}}."""
        payload = self.parse_json(response)
        try:
            rows = payload["data"]["attributes"]["ohlcv_list"]
        except (KeyError, TypeError):
            raise self.shape_error(response, "missing data.attributes.ohlcv_list")
        if not isinstance(rows, list):
            raise self.shape_error(response, "ohlcv_list is not a list")
        return rows

    def parse_row(self, row: Any) -> Candle:
        if not isinstance(row, list) or len(row) < 5:
            # Left for the normalizer to reject and count
            return Candle(timestamp=repr(row), close=None)
        ts, o, h, l, c = row[:5]
        return Candle(
            timestamp=ts,
            open=opt_float(o),
            high=opt_float(h),
            low=opt_float(l),
            close=opt_float(c),
            volume=opt_float(row[5]) if len(row) > 5 else None,
        )
