"""
Custom exception classes for the ingestion engine.
"""

from typing import Optional


class TokenLedgerError(Exception):
    """Base exception for all tokenledger errors."""
    pass


class ConfigurationError(TokenLedgerError):
    """Raised when configuration is invalid or missing."""
    pass


class ProviderError(TokenLedgerError):
    """
    Raised when a market-data provider returns an unusable response.

    Attributes:
        provider: Provider name (e.g., 'coingecko')
        status: HTTP status code, or None for transport failures
        body: Response body (truncated) or transport error text
    """

    def __init__(self, provider: str, status: Optional[int], body: str = ""):
        self.provider = provider
        self.status = status
        self.body = body[:500] if body else ""
        status_text = status if status is not None else "network"
        super().__init__(f"[{provider} {status_text}] {self.body}".rstrip())


class TransientProviderError(ProviderError):
    """Rate limits, server errors and network failures. Safe to retry."""
    pass


class FatalProviderError(ProviderError):
    """Bad request or bad credentials. Retrying will not help."""
    pass


class MalformedRecordError(TokenLedgerError):
    """Raised when a single provider record cannot be normalized."""
    pass


class StoreWriteError(TokenLedgerError):
    """Raised when a store write or batch commit fails."""
    pass


class NoQuoteAvailable(TokenLedgerError):
    """Raised when no endpoint yields a usable quote on the hourly path."""
    pass
