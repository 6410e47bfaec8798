"""
Provider factory for market data.

Selects the configured vendor once and hands the same instance to every cache.
"""

import logging
from typing import Optional

from finsight.config import SUPPORTED_PROVIDERS, settings

from .base_provider import MarketDataProvider

logger = logging.getLogger(__name__)


class MarketDataProviderFactory:
    """Factory for creating market data providers."""

    _instance: Optional[MarketDataProvider] = None

    @classmethod
    def get_provider(cls, provider_name: Optional[str] = None) -> MarketDataProvider:
        """
        Get market data provider instance.

        Args:
            provider_name: Override provider (yahoo_rapidapi, yahoo_finance, finnhub).
                           If None, uses settings.MARKET_DATA_PROVIDER

        Raises:
            ValueError: If provider not supported or missing its API key
        """
        if provider_name is None and cls._instance is not None:
            return cls._instance

        name = (provider_name or settings.MARKET_DATA_PROVIDER).lower()

        if name == "yahoo_rapidapi":
            from .yahoo_rapidapi_provider import YahooRapidApiProvider
            provider = YahooRapidApiProvider()
        elif name == "yahoo_finance":
            from .yahoo_finance_provider import YahooFinanceProvider
            provider = YahooFinanceProvider()
        elif name == "finnhub":
            from .finnhub_provider import FinnhubProvider
            provider = FinnhubProvider()
        else:
            raise ValueError(
                f"Unsupported market data provider: {name}. "
                f"Supported: {', '.join(SUPPORTED_PROVIDERS)}"
            )

        logger.info(f"Using market data provider: {provider.get_provider_name()}")

        # Only the configured default is cached; overrides are one-offs
        if provider_name is None:
            cls._instance = provider

        return provider

    @classmethod
    def reset(cls) -> None:
        cls._instance = None


def get_market_data_provider(provider_name: Optional[str] = None) -> MarketDataProvider:
    """Convenience function to get market data provider."""
    return MarketDataProviderFactory.get_provider(provider_name)
