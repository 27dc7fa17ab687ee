"""
Pytest configuration and shared fixtures for testing
"""

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from tokenledger.database import DocumentStore
from tokenledger.models.ohlcv import Candle
from tokenledger.providers.base import Page, PagedProvider
from tokenledger.utils.config import AssetConfig, IngestConfig
from tokenledger.utils.http import HttpResponse

FIXED_NOW = datetime(2024, 5, 1, 13, 30, 0, tzinfo=timezone.utc)


def json_response(payload: Any, status: int = 200) -> HttpResponse:
    return HttpResponse(status=status, text=json.dumps(payload))


class FakeHttpClient:
    """Scripted stand-in for HttpClient. Queued items are returned (or raised) in order."""

    def __init__(self, responses: Optional[List[Any]] = None):
        self.queue = list(responses or [])
        self.calls: List[dict] = []

    def add(self, *items: Any) -> "FakeHttpClient":
        self.queue.extend(items)
        return self

    def get(self, url, params=None, headers=None, source="http"):
        self.calls.append({"method": "GET", "url": url, "params": params, "headers": headers})
        return self._next()

    def post_json(self, url, payload, headers=None, source="http"):
        self.calls.append({"method": "POST", "url": url, "json": payload, "headers": headers})
        return self._next()

    def _next(self):
        if not self.queue:
            raise AssertionError("FakeHttpClient: no response queued")
        item = self.queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class ScriptedProvider(PagedProvider):
    """Paged provider that replays a script of pages and exceptions."""

    name = "scripted"
    page_size = 1000

    def __init__(self, script: List[Any], repeat: Optional[Page] = None):
        super().__init__(http=None)
        self.script = list(script)
        self.repeat = repeat
        self.cursors: List[Any] = []

    def fetch_page(self, cursor=None) -> Page:
        self.cursors.append(cursor)
        if not self.script:
            if self.repeat is None:
                raise AssertionError("ScriptedProvider: fetched past end of script")
            return self.repeat
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def fetches(self) -> int:
        return len(self.cursors)


def make_page(rows: int, cursor: Any = None, page_size: int = 1000) -> Page:
    """A page of `rows` valid candles; short pages are marked done."""
    base = 1_700_000_000
    candles = [Candle(timestamp=base + i * 86400, close=1.0) for i in range(rows)]
    done = rows < page_size
    return Page(records=candles, next_cursor=None if done else cursor, done=done)


class FakeSleep:
    """Records requested waits instead of blocking."""

    def __init__(self):
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def store(tmp_path) -> DocumentStore:
    """A fresh sqlite-backed document store."""
    document_store = DocumentStore(url=f"sqlite:///{tmp_path / 'test.db'}")
    document_store.create_tables()
    yield document_store
    document_store.dispose()


@pytest.fixture
def asset() -> AssetConfig:
    return AssetConfig(
        token_address="0xToken",
        pair_address="0xPair",
        chain="ethereum",
        slug="test",
    )


@pytest.fixture
def ingest() -> IngestConfig:
    return IngestConfig(
        safety_cap=20000,
        batch_size=450,
        max_attempts=3,
        base_delay=1.0,
        max_delay=30.0,
        page_delay=0.25,
        max_runtime=None,
        http_timeout=5.0,
    )
