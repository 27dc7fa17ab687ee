"""
Base provider interfaces.

All market-data providers inherit from BaseProvider, which owns the HTTP
client and the status-code classification shared by every adapter. Paged
history sources implement PagedProvider.fetch_page; aggregator quote sources
implement QuoteProvider.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, List, Optional

from ..models.ohlcv import Candle, Quote
from ..utils.exceptions import FatalProviderError, TransientProviderError
from ..utils.http import HttpClient, HttpResponse
from ..utils.logger import get_logger

TRANSIENT_STATUSES = frozenset({408, 425, 429})


class ResponseClass(str, Enum):
    """Outcome of one provider response, decided by status code only."""

    OK = "ok"
    TRANSIENT = "transient"
    SOFT_LIMIT = "soft_limit"
    FATAL = "fatal"


@dataclass
class Page:
    """
    One page of provider history.

    Attributes:
        records: Candles on this page, in provider order
        next_cursor: Cursor for the following page (None when done)
        done: True when the provider has no further rows
        soft_limited: True when paging stopped at a provider soft limit
    """

    records: List[Candle] = field(default_factory=list)
    next_cursor: Optional[Any] = None
    done: bool = False
    soft_limited: bool = False


def opt_float(value: Any) -> Optional[float]:
    """
    Convert a provider number (often a string) to float.

    Missing values stay None. Values that are present but unparsable become
    NaN so the normalizer rejects the row instead of silently dropping it.
    """
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


class BaseProvider(ABC):
    """
    Abstract base class for all providers.

    Each provider is responsible for:
    1. Building provider-specific URLs, headers and query payloads
    2. Classifying responses into OK / TRANSIENT / SOFT_LIMIT / FATAL
    3. Parsing its response schema into Candle or Quote objects
    """

    name: str = ""
    # Statuses this provider uses to say "history window exhausted"
    soft_limit_statuses: FrozenSet[int] = frozenset()

    def __init__(self, http: HttpClient):
        """
        Initialize the provider.

        Args:
            http: HTTP client shared by the run
        """
        self.http = http
        self.logger = get_logger(f"provider.{self.name}")

    def classify(self, response: HttpResponse) -> ResponseClass:
        """Classify a response by status code."""
        if response.ok:
            return ResponseClass.OK
        if response.status in self.soft_limit_statuses:
            return ResponseClass.SOFT_LIMIT
        if response.status in TRANSIENT_STATUSES or response.status >= 500:
            return ResponseClass.TRANSIENT
        return ResponseClass.FATAL

    def check_response(self, response: HttpResponse) -> ResponseClass:
        """
        Raise for unusable responses.

        Returns:
            ResponseClass.OK or ResponseClass.SOFT_LIMIT

        Raises:
            TransientProviderError: Rate limit or server error
            FatalProviderError: Any other non-2xx status
        """
        outcome = self.classify(response)
        if outcome is ResponseClass.TRANSIENT:
            raise TransientProviderError(self.name, response.status, response.text)
        if outcome is ResponseClass.FATAL:
            raise FatalProviderError(self.name, response.status, response.text)
        if outcome is ResponseClass.SOFT_LIMIT:
            self.logger.warning(f"Soft limit ({response.status}): {response.text[:200]}")
        return outcome

    def parse_json(self, response: HttpResponse) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise FatalProviderError(self.name, response.status, f"invalid JSON: {e}") from e

    def shape_error(self, response: HttpResponse, detail: str) -> FatalProviderError:
        """Error for a 2xx body that does not match the provider schema."""
        return FatalProviderError(self.name, response.status, f"unexpected response shape: {detail}")


class PagedProvider(BaseProvider):
    """A provider whose history is read page by page."""

    # Provider-imposed maximum rows per page; None for single-page sources
    page_size: Optional[int] = None
    # "backward" pages from now into the past, "forward" from the past to now
    direction: str = "backward"

    @abstractmethod
    def fetch_page(self, cursor: Optional[Any] = None) -> Page:
        """
        Fetch one page of history.

        Args:
            cursor: Position returned by the previous page, None on first call

        Returns:
            Page of candles, with next cursor and done flag

        Raises:
            TransientProviderError: Retryable failure
            FatalProviderError: Non-retryable failure
        """
        pass

    def is_last_page(self, rows: list) -> bool:
        """A short (or empty) page means the provider has nothing further."""
        return self.page_size is None or len(rows) < self.page_size


class QuoteProvider(BaseProvider):
    """An aggregator returning current quotes for several venues at once."""

    @abstractmethod
    def endpoints(self) -> List[str]:
        """Fallback endpoints, in the order they should be tried."""
        pass

    @abstractmethod
    def fetch_candidates(self, url: str) -> List[Quote]:
        """
        Fetch candidate quotes from one endpoint.

        Raises:
            TransientProviderError: Retryable failure
            FatalProviderError: Non-retryable failure
        """
        pass
