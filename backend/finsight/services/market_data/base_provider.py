"""
Base provider interface for market data.

Quotes, analyst recommendation trends and screener lists all come through
this interface so the caches never depend on a concrete vendor.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel

from finsight.models.market_list_entry import MarketListType


class QuoteData(BaseModel):
    """Standardized quote data across all providers."""

    symbol: str
    price: Decimal
    name: Optional[str] = None
    change_percent: Optional[Decimal] = None


class RecommendationTrend(BaseModel):
    """Analyst recommendation counts for the most recent period."""

    symbol: str
    period: Optional[str] = None
    strong_buy: int = 0
    buy: int = 0
    hold: int = 0
    sell: int = 0
    strong_sell: int = 0


class ScreenerQuote(BaseModel):
    """One row of a market screener list (gainers, losers, most active)."""

    symbol: str
    name: Optional[str] = None
    price: Optional[Decimal] = None
    change: Optional[Decimal] = None
    change_percent: Optional[Decimal] = None
    volume: Optional[int] = None
    market_cap: Optional[Decimal] = None
    fifty_two_week_range: Optional[str] = None


class MarketDataProvider(ABC):
    """
    Abstract base class for market data providers.

    Implementations: YahooRapidApiProvider, YahooFinanceProvider, FinnhubProvider.
    Every method raises ``UpstreamUnavailable`` when the vendor call fails,
    times out or returns nothing usable.
    """

    @abstractmethod
    async def get_quote(self, symbol: str) -> QuoteData:
        """
        Get current quote for a symbol.

        Args:
            symbol: Ticker symbol (e.g., "AAPL")

        Returns:
            QuoteData with current price and daily change percent

        Raises:
            UpstreamUnavailable: If the quote cannot be fetched
        """

    @abstractmethod
    async def get_recommendation(self, symbol: str) -> RecommendationTrend:
        """
        Get the latest analyst recommendation trend for a symbol.

        Raises:
            UpstreamUnavailable: If no trend is available
        """

    @abstractmethod
    async def get_market_list(self, list_type: MarketListType, limit: int) -> List[ScreenerQuote]:
        """
        Get the first ``limit`` entries of a screener list, in screener order.

        Raises:
            UpstreamUnavailable: If the list cannot be fetched
        """

    @abstractmethod
    def get_rate_limits(self) -> Dict[str, int]:
        """
        Get rate limit information.

        Returns:
            Dict with 'calls_per_minute', 'calls_per_day', etc.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Get human-readable provider name."""
