"""
Thin HTTP capability used by the provider adapters.

Transport only: no retries here. Retry and backoff belong to the pager.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from .exceptions import TransientProviderError


@dataclass
class HttpResponse:
    """Status code and raw body of one HTTP exchange."""

    status: int
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        return json.loads(self.text)


class HttpClient:
    """requests.Session wrapper with a default timeout and JSON headers."""

    def __init__(self, timeout: float = 15.0, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        source: str = "http",
    ) -> HttpResponse:
        """Make a GET request."""
        return self._request("GET", url, source, params=params, headers=headers)

    def post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        source: str = "http",
    ) -> HttpResponse:
        """Make a POST request with a JSON body."""
        return self._request("POST", url, source, json=payload, headers=headers)

    def _request(self, method: str, url: str, source: str, **kwargs) -> HttpResponse:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            # Connection resets and timeouts are worth another attempt
            raise TransientProviderError(source, None, str(e)) from e
        return HttpResponse(status=response.status_code, text=response.text)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False
