"""Expose constructed client wrappers."""

from .token_store import SQLiteTokenStore
from .truelayer import AggregatorAPIError, OAuthTokenExchangeError, TrueLayerClient

__all__ = [
    "AggregatorAPIError",
    "OAuthTokenExchangeError",
    "SQLiteTokenStore",
    "TrueLayerClient",
]
