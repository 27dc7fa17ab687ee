"""
Tests for provider adapters: request shape, classification and parsing
"""

import math

import pytest

from tokenledger.providers import BACKFILL_PROVIDERS, build_provider
from tokenledger.providers.base import ResponseClass
from tokenledger.providers.coingecko import CoinGeckoProvider
from tokenledger.providers.dexscreener import DexScreenerProvider
from tokenledger.providers.geckoterminal import GeckoTerminalProvider
from tokenledger.providers.uniswap import SubgraphProvider, UniswapV2Provider, UniswapV3Provider
from tokenledger.utils.config import (
    AssetConfig,
    CoinGeckoConfig,
    Config,
    DatabaseConfig,
    DexScreenerConfig,
    GeckoTerminalConfig,
    IngestConfig,
    TheGraphConfig,
)
from tokenledger.utils.exceptions import (
    ConfigurationError,
    FatalProviderError,
    TransientProviderError,
)
from tokenledger.utils.http import HttpResponse

from conftest import FakeHttpClient, json_response

MAY_1_MS = 1714521600000


def gecko_terminal(http, asset):
    return GeckoTerminalProvider(http, asset, GeckoTerminalConfig(api_key=None, network="eth"))


def graph_config(api_key="key", subgraph_id="sub"):
    return TheGraphConfig(
        api_key=api_key,
        v3_subgraph_id=subgraph_id,
        v2_url="https://graph.test/uniswap-v2",
    )


def ohlcv_rows(n, newest=1714521600):
    return [[newest - i * 86400, 1.0, 1.2, 0.9, 1.1, 50.0] for i in range(n)]


def gt_payload(rows):
    return {"data": {"attributes": {"ohlcv_list": rows}}}


def day_rows(n, start=1700000000):
    return [{"date": start + i * 86400, "priceUSD": "2.5", "volumeUSD": "10"} for i in range(n)]


class TestClassification:
    @pytest.mark.parametrize(
        "status,expected",
        [
            (200, ResponseClass.OK),
            (204, ResponseClass.OK),
            (408, ResponseClass.TRANSIENT),
            (425, ResponseClass.TRANSIENT),
            (429, ResponseClass.TRANSIENT),
            (500, ResponseClass.TRANSIENT),
            (503, ResponseClass.TRANSIENT),
            (400, ResponseClass.FATAL),
            (401, ResponseClass.FATAL),
            (403, ResponseClass.FATAL),
            (404, ResponseClass.FATAL),
        ],
    )
    def test_default_statuses(self, asset, status, expected):
        provider = CoinGeckoProvider(FakeHttpClient(), asset, CoinGeckoConfig(api_key=None))
        assert provider.classify(HttpResponse(status, "")) is expected

    def test_geckoterminal_401_is_soft_limit(self, asset):
        provider = gecko_terminal(FakeHttpClient(), asset)
        assert provider.classify(HttpResponse(401, "")) is ResponseClass.SOFT_LIMIT
        assert provider.classify(HttpResponse(403, "")) is ResponseClass.FATAL

    def test_error_carries_status_and_body(self, asset):
        http = FakeHttpClient([HttpResponse(400, "x" * 2000)])
        provider = CoinGeckoProvider(http, asset, CoinGeckoConfig(api_key=None))

        with pytest.raises(FatalProviderError) as info:
            provider.fetch_page()

        assert info.value.provider == "coingecko"
        assert info.value.status == 400
        assert len(info.value.body) == 500


class TestCoinGecko:
    def test_request_and_parse(self, asset):
        payload = {
            "prices": [[MAY_1_MS, 0.05], [MAY_1_MS + 86400000, 0.06]],
            "total_volumes": [[MAY_1_MS, 1000.0]],
        }
        http = FakeHttpClient([json_response(payload)])
        provider = CoinGeckoProvider(http, asset, CoinGeckoConfig(api_key="demo-key", is_pro=False))

        page = provider.fetch_page()

        call = http.calls[0]
        assert call["url"] == (
            "https://api.coingecko.com/api/v3/coins/ethereum/contract/0xtoken/market_chart"
        )
        assert call["params"] == {"vs_currency": "usd", "days": "max", "interval": "daily"}
        assert call["headers"] == {"x-cg-demo-api-key": "demo-key"}
        assert page.done is True
        assert [c.close for c in page.records] == [0.05, 0.06]
        assert page.records[0].timestamp == MAY_1_MS / 1000
        assert page.records[0].volume == 1000.0
        assert page.records[1].volume is None

    def test_pro_key_uses_pro_host(self, asset):
        http = FakeHttpClient([json_response({"prices": []})])
        provider = CoinGeckoProvider(http, asset, CoinGeckoConfig(api_key="pro-key", is_pro=True))

        provider.fetch_page()

        assert http.calls[0]["url"].startswith("https://pro-api.coingecko.com/")
        assert http.calls[0]["headers"] == {"x-cg-pro-api-key": "pro-key"}

    def test_malformed_row_left_for_normalizer(self, asset):
        http = FakeHttpClient([json_response({"prices": [[MAY_1_MS, 1.0], "junk"]})])
        provider = CoinGeckoProvider(http, asset, CoinGeckoConfig(api_key=None))

        page = provider.fetch_page()

        assert len(page.records) == 2
        assert page.records[1].close is None

    def test_unexpected_shape(self, asset):
        http = FakeHttpClient([json_response({"error": "nope"})])
        provider = CoinGeckoProvider(http, asset, CoinGeckoConfig(api_key=None))

        with pytest.raises(FatalProviderError):
            provider.fetch_page()

    def test_requires_token(self):
        asset = AssetConfig(token_address="", pair_address="", chain="ethereum", slug="t")
        with pytest.raises(ConfigurationError):
            CoinGeckoProvider(FakeHttpClient(), asset, CoinGeckoConfig(api_key=None))


class TestGeckoTerminal:
    def test_full_page_continues_from_oldest(self, asset):
        rows = ohlcv_rows(1000)
        http = FakeHttpClient([json_response(gt_payload(rows))])

        page = gecko_terminal(http, asset).fetch_page()

        assert http.calls[0]["url"] == (
            "https://api.geckoterminal.com/api/v2/networks/eth/pools/0xpair/ohlcv/day"
        )
        assert http.calls[0]["params"] == {"limit": 1000, "currency": "usd"}
        assert page.done is False
        assert page.next_cursor == rows[-1][0]
        assert page.records[0].high == 1.2

    def test_cursor_sent_as_before_timestamp(self, asset):
        http = FakeHttpClient([json_response(gt_payload(ohlcv_rows(3, newest=1700000000)))])

        page = gecko_terminal(http, asset).fetch_page(cursor=1710000000)

        assert http.calls[0]["params"]["before_timestamp"] == 1710000000
        assert page.done is True
        assert page.next_cursor is None

    def test_soft_limit(self, asset):
        http = FakeHttpClient([HttpResponse(401, '{"errors":[{"status":"401"}]}')])

        page = gecko_terminal(http, asset).fetch_page(cursor=1600000000)

        assert page.done is True
        assert page.soft_limited is True
        assert page.records == []

    def test_stalled_cursor_stops(self, asset):
        http = FakeHttpClient([json_response(gt_payload(ohlcv_rows(1000)))])

        page = gecko_terminal(http, asset).fetch_page(cursor=1000)

        assert page.done is True

    def test_short_row_left_for_normalizer(self, asset):
        http = FakeHttpClient([json_response(gt_payload([[1714521600, 1.0], ohlcv_rows(1)[0]]))])

        page = gecko_terminal(http, asset).fetch_page()

        assert len(page.records) == 2
        assert page.records[0].close is None

    def test_server_error_is_transient(self, asset):
        http = FakeHttpClient([HttpResponse(502, "bad gateway")])
        with pytest.raises(TransientProviderError):
            gecko_terminal(http, asset).fetch_page()


class TestUniswap:
    def test_v2_query_and_cursor(self, asset):
        rows = [
            {"date": 1700000000 + i * 86400, "priceUSD": "1.5", "totalLiquidityUSD": "900"}
            for i in range(1000)
        ]
        http = FakeHttpClient([json_response({"data": {"tokenDayDatas": rows}})])

        page = UniswapV2Provider(http, asset, graph_config()).fetch_page()

        call = http.calls[0]
        assert call["method"] == "POST"
        assert call["url"] == "https://graph.test/uniswap-v2"
        assert call["json"]["variables"] == {"token": "0xtoken", "after": 0, "first": 1000}
        assert "tokenDayDatas" in call["json"]["query"]
        assert page.next_cursor == rows[-1]["date"]
        assert page.done is False
        assert page.records[0].metadata["total_liquidity_usd"] == 900.0

    def test_v2_short_page_done(self, asset):
        http = FakeHttpClient([json_response({"data": {"tokenDayDatas": day_rows(5)}})])

        page = UniswapV2Provider(http, asset, graph_config()).fetch_page(cursor=1699999999)

        assert http.calls[0]["json"]["variables"]["after"] == 1699999999
        assert page.done is True
        assert page.next_cursor is None

    def test_graphql_errors_are_fatal(self, asset):
        body = {"errors": [{"message": "Type `Query` has no field `tokenDayDatas`"}]}
        http = FakeHttpClient([json_response(body)])

        with pytest.raises(FatalProviderError) as info:
            UniswapV2Provider(http, asset, graph_config()).fetch_page()
        assert "tokenDayDatas" in info.value.body

    def test_v3_gateway_url_and_volume(self, asset):
        http = FakeHttpClient([json_response({"data": {"tokenDayDatas": day_rows(2)}})])

        page = UniswapV3Provider(http, asset, graph_config()).fetch_page()

        assert http.calls[0]["url"] == "https://gateway.thegraph.com/api/key/subgraphs/id/sub"
        assert page.records[0].volume == 10.0
        assert page.records[0].close == 2.5

    def test_v3_requires_key(self, asset):
        with pytest.raises(ConfigurationError):
            UniswapV3Provider(FakeHttpClient(), asset, graph_config(api_key=None))

    def test_subgraph_base_cannot_be_built(self, asset):
        with pytest.raises(TypeError):
            SubgraphProvider(FakeHttpClient(), asset, graph_config())


class TestDexScreener:
    def provider(self, asset, http=None):
        return DexScreenerProvider(http or FakeHttpClient(), asset, DexScreenerConfig(base_url="https://dex.test"))

    def test_endpoint_order(self, asset):
        assert self.provider(asset).endpoints() == [
            "https://dex.test/latest/dex/pairs/ethereum/0xpair",
            "https://dex.test/latest/dex/pairs/0xpair",
            "https://dex.test/latest/dex/tokens/0xtoken",
            "https://dex.test/latest/dex/search?q=0xtoken",
        ]

    def test_parse_pairs(self, asset):
        payload = {
            "pairs": [
                {
                    "pairAddress": "0xABC",
                    "chainId": "ethereum",
                    "priceUsd": "0.0123",
                    "volume": {"h24": "4567.8"},
                    "baseToken": {"address": "0xTOKEN"},
                    "quoteToken": {"address": "0xWETH"},
                },
                {"pairAddress": "0xDEF", "chainId": "bsc"},
            ]
        }
        http = FakeHttpClient([json_response(payload)])

        quotes = self.provider(asset, http).fetch_candidates("https://dex.test/x")

        assert quotes[0].pair_address == "0xabc"
        assert quotes[0].price_usd == 0.0123
        assert quotes[0].volume_usd == 4567.8
        assert quotes[0].references_token("0xToken")
        assert math.isnan(quotes[1].price_usd)
        assert quotes[1].volume_usd is None


class TestBuildProvider:
    def config(self, asset):
        return Config(
            database=DatabaseConfig(),
            asset=asset,
            coingecko=CoinGeckoConfig(api_key=None),
            geckoterminal=GeckoTerminalConfig(api_key=None, network="eth"),
            thegraph=graph_config(),
            dexscreener=DexScreenerConfig(base_url="https://dex.test"),
            ingest=IngestConfig(),
            log_level="INFO",
            log_file=None,
        )

    def test_builds_every_backfill_provider(self, asset):
        config = self.config(asset)
        names = [build_provider(name, FakeHttpClient(), config).name for name in BACKFILL_PROVIDERS]
        assert names == BACKFILL_PROVIDERS

    def test_unknown_provider(self, asset):
        with pytest.raises(ConfigurationError):
            build_provider("binance", FakeHttpClient(), self.config(asset))
