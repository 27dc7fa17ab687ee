"""
Uniswap subgraph providers (The Graph).

Both versions read tokenDayDatas oldest-first and page forward with a
date_gt cursor: the next page starts after the last day already seen. A
2xx response carrying a GraphQL "errors" array is a fatal query error.
"""

import json
from abc import abstractmethod
from typing import Any, Dict, List, Optional

from ..models.ohlcv import Candle
from ..providers.base import Page, PagedProvider, opt_float
from ..utils.config import AssetConfig, TheGraphConfig
from ..utils.http import HttpClient, HttpResponse
from ..utils.exceptions import FatalProviderError


class SubgraphProvider(PagedProvider):
    """Shared GraphQL paging for tokenDayDatas."""

    page_size = 1000
    direction = "forward"
    query: str = ""

    def __init__(self, http: HttpClient, asset: AssetConfig, graph: TheGraphConfig):
        super().__init__(http)
        self.token = asset.require_token()
        self.graph = graph

    @abstractmethod
    def url(self) -> str:
        """Endpoint the GraphQL query is posted to."""

    def fetch_page(self, cursor: Optional[Any] = None) -> Page:
        variables = {"token": self.token, "after": int(cursor or 0), "first": self.page_size}
        response = self.http.post_json(
            self.url(),
            {"query": self.query, "variables": variables},
            headers={"Content-Type": "application/json"},
            source=self.name,
        )
        self.check_response(response)
        rows = self.extract_rows(response)
        candles = [self.parse_row(row) for row in rows]

        done = self.is_last_page(rows)
        next_cursor = None
        if not done:
            next_cursor = rows[-1].get("date") if isinstance(rows[-1], dict) else None
            if not isinstance(next_cursor, int) or next_cursor <= int(cursor or 0):
                self.logger.warning(f"Cursor did not advance past {cursor}; stopping")
                done, next_cursor = True, None

        self.logger.debug(f"Fetched {len(rows)} day rows after {cursor}")
        return Page(records=candles, next_cursor=next_cursor, done=done)

    def extract_rows(self, response: HttpResponse) -> List[Dict[str, Any]]:
        payload = self.parse_json(response)
        if not isinstance(payload, dict):
            raise self.shape_error(response, "body is not an object")
        if payload.get("errors"):
            raise FatalProviderError(self.name, response.status, json.dumps(payload["errors"])[:500])
        rows = (payload.get("data") or {}).get("tokenDayDatas")
        if not isinstance(rows, list):
            raise self.shape_error(response, "missing data.tokenDayDatas")
        return rows

    @abstractmethod
    def parse_row(self, row: Any) -> Candle:
        pass


class UniswapV2Provider(SubgraphProvider):
    """Uniswap v2 hosted subgraph. No API key."""

    name = "uniswap-v2"
    query = """
    query TokenDays($token: String!, $after: Int!, $first: Int!) {
      tokenDayDatas(
        first: $first
        orderBy: date
        orderDirection: asc
        where: { token: $token, date_gt: $after }
      ) {
        date
        priceUSD
        totalLiquidityToken
        totalLiquidityUSD
      }
    }
    """

    def url(self) -> str:
        return self.graph.v2_url

    def parse_row(self, row: Any) -> Candle:
        if not isinstance(row, dict):
            return Candle(timestamp=repr(row), close=None)
        return Candle(
            timestamp=row.get("date"),
            close=opt_float(row.get("priceUSD")),
            metadata={
                "total_liquidity_usd": opt_float(row.get("totalLiquidityUSD")),
                "total_liquidity_token": opt_float(row.get("totalLiquidityToken")),
            },
        )


class UniswapV3Provider(SubgraphProvider):
    """Uniswap v3 subgraph through The Graph gateway. Needs an API key."""

    name = "uniswap-v3"
    query = """
    query TokenDays($token: String!, $after: Int!, $first: Int!) {
      tokenDayDatas(
        first: $first
        orderBy: date
        orderDirection: asc
        where: { token_: { id: $token }, date_gt: $after }
      ) {
        date
        priceUSD
        volumeUSD
      }
    }
    """

    def __init__(self, http: HttpClient, asset: AssetConfig, graph: TheGraphConfig):
        super().__init__(http, asset, graph)
        self._url = graph.v3_url()

    def url(self) -> str:
        return self._url

    def parse_row(self, row: Any) -> Candle:
        if not isinstance(row, dict):
            return Candle(timestamp=repr(row), close=None)
        return Candle(
            timestamp=row.get("date"),
            close=opt_float(row.get("priceUSD")),
            volume=opt_float(row.get("volumeUSD")),
        )
