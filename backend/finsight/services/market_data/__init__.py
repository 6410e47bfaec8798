"""
Market data service - provider-agnostic quotes, analyst trends and screeners.

Supports multiple providers:
- Yahoo Finance over RapidAPI (default, needs RAPIDAPI_KEY)
- Yahoo Finance via yfinance (FREE, no key)
- Finnhub (FREE tier: 60 calls/min, no screeners)
"""

from .base_provider import (
    MarketDataProvider,
    QuoteData,
    RecommendationTrend,
    ScreenerQuote,
)
from .provider_factory import MarketDataProviderFactory, get_market_data_provider

__all__ = [
    "MarketDataProvider",
    "MarketDataProviderFactory",
    "QuoteData",
    "RecommendationTrend",
    "ScreenerQuote",
    "get_market_data_provider",
]
