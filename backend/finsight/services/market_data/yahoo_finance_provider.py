"""
Yahoo Finance market data provider (yfinance).

FREE - no API key required.
- Quotes from ``Ticker.info``
- Analyst recommendation trends from ``Ticker.recommendations``
- Predefined screeners via ``yf.screen``
"""

import asyncio
import logging
from time import time
from typing import Any, Callable, Dict, List

import yfinance as yf

from finsight.config import settings
from finsight.core.exceptions import UpstreamUnavailable
from finsight.core.metrics import track_upstream_failure
from finsight.models.market_list_entry import MarketListType

from .base_provider import MarketDataProvider, QuoteData, RecommendationTrend, ScreenerQuote
from .security import (
    PriceValidationError,
    SymbolValidationError,
    validate_quote_response,
    validate_symbol,
)
from .yahoo_rapidapi_provider import screener_quote_from_yahoo

logger = logging.getLogger(__name__)

PROVIDER = "yahoo_finance"


class YahooFinanceProvider(MarketDataProvider):
    """Yahoo Finance implementation via the yfinance library."""

    def __init__(self):
        self.provider_name = "Yahoo Finance"
        self._timeout = settings.REQUEST_TIMEOUT_SECONDS

    async def _call(self, operation: str, symbol: str, fn: Callable[[], Any]) -> Any:
        """Run a blocking yfinance call in a worker thread with a timeout."""
        logger.info(
            "external_api_call",
            extra={"provider": PROVIDER, "operation": operation, "symbol": symbol},
        )
        start_time = time()

        try:
            result = await asyncio.wait_for(asyncio.to_thread(fn), timeout=self._timeout)
        except asyncio.TimeoutError:
            track_upstream_failure(PROVIDER, operation)
            logger.error(
                "external_api_timeout",
                extra={
                    "provider": PROVIDER,
                    "operation": operation,
                    "symbol": symbol,
                    "duration_ms": (time() - start_time) * 1000,
                    "timeout_seconds": self._timeout,
                },
            )
            raise UpstreamUnavailable(
                f"Request timeout for {symbol} - Yahoo Finance did not respond in time",
                provider=PROVIDER,
                timed_out=True,
            )
        except Exception as e:
            track_upstream_failure(PROVIDER, operation)
            logger.error(
                "external_api_failure",
                extra={
                    "provider": PROVIDER,
                    "operation": operation,
                    "symbol": symbol,
                    "duration_ms": (time() - start_time) * 1000,
                    "error": str(e),
                },
            )
            raise UpstreamUnavailable(f"{operation} failed for {symbol}: {e}", provider=PROVIDER)

        logger.info(
            "external_api_success",
            extra={
                "provider": PROVIDER,
                "operation": operation,
                "symbol": symbol,
                "duration_ms": (time() - start_time) * 1000,
            },
        )
        return result

    @staticmethod
    def _symbol(symbol: str) -> str:
        try:
            return validate_symbol(symbol)
        except SymbolValidationError as e:
            logger.error(f"Symbol validation failed: {e}")
            raise UpstreamUnavailable(str(e), provider=PROVIDER, status_code=400)

    async def get_quote(self, symbol: str) -> QuoteData:
        symbol = self._symbol(symbol)
        info = await self._call("get_quote", symbol, lambda: yf.Ticker(symbol).info)

        current_price = (info or {}).get("currentPrice") or (info or {}).get("regularMarketPrice")
        if current_price is None:
            raise UpstreamUnavailable(
                f"No price data available for {symbol}", provider=PROVIDER, status_code=404
            )

        try:
            validated = validate_quote_response(
                {
                    "symbol": symbol,
                    "price": current_price,
                    "name": info.get("longName") or info.get("shortName"),
                    "change_percent": info.get("regularMarketChangePercent"),
                },
                symbol,
            )
        except PriceValidationError as e:
            raise UpstreamUnavailable(str(e), provider=PROVIDER)

        return QuoteData(**validated.model_dump())

    async def get_recommendation(self, symbol: str) -> RecommendationTrend:
        symbol = self._symbol(symbol)
        frame = await self._call(
            "get_recommendation", symbol, lambda: yf.Ticker(symbol).recommendations
        )

        if frame is None or getattr(frame, "empty", True):
            raise UpstreamUnavailable(
                f"No recommendation trend for {symbol}", provider=PROVIDER, status_code=404
            )

        # Rows are ordered newest first: 0m, -1m, -2m, -3m
        latest = frame.iloc[0]
        return RecommendationTrend(
            symbol=symbol,
            period=str(latest.get("period")) if latest.get("period") is not None else None,
            strong_buy=int(latest.get("strongBuy", 0) or 0),
            buy=int(latest.get("buy", 0) or 0),
            hold=int(latest.get("hold", 0) or 0),
            sell=int(latest.get("sell", 0) or 0),
            strong_sell=int(latest.get("strongSell", 0) or 0),
        )

    async def get_market_list(self, list_type: MarketListType, limit: int) -> List[ScreenerQuote]:
        response = await self._call(
            "get_market_list",
            list_type.screener_id,
            lambda: yf.screen(list_type.screener_id, count=limit),
        )

        quotes = (response or {}).get("quotes")
        if not quotes:
            raise UpstreamUnavailable(
                f"Screener {list_type.screener_id} returned no quotes", provider=PROVIDER
            )
        return [screener_quote_from_yahoo(item) for item in quotes[:limit] if item.get("symbol")]

    def get_rate_limits(self) -> Dict[str, int]:
        # yfinance has no official limits but Yahoo throttles aggressive callers
        return {
            "calls_per_minute": 2000,
            "calls_per_day": 48000,
        }

    def get_provider_name(self) -> str:
        return self.provider_name
