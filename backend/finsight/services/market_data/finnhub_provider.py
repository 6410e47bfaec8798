"""
Finnhub market data provider.

Free tier: 60 API calls/minute.
- Real-time quotes (15-min delay on free)
- Analyst recommendation trends
- No screener lists

Requires: FINNHUB_API_KEY environment variable.
"""

import asyncio
import logging
from decimal import Decimal
from time import time
from typing import Dict, List

import finnhub

from finsight.config import settings
from finsight.core.exceptions import UpstreamUnavailable
from finsight.core.metrics import track_upstream_failure
from finsight.models.market_list_entry import MarketListType

from .base_provider import MarketDataProvider, QuoteData, RecommendationTrend, ScreenerQuote
from .security import SymbolValidationError, validate_symbol

logger = logging.getLogger(__name__)

PROVIDER = "finnhub"


class FinnhubProvider(MarketDataProvider):
    """Finnhub implementation - 60 free calls/min."""

    def __init__(self, api_key: str = None):
        api_key = api_key or settings.FINNHUB_API_KEY
        if not api_key:
            raise ValueError(
                "FINNHUB_API_KEY is not configured. "
                "Get a free key at https://finnhub.io/"
            )
        self._client = finnhub.Client(api_key=api_key)
        self._timeout = settings.REQUEST_TIMEOUT_SECONDS

    def _failure(self, operation: str, symbol: str, start_time: float, error: Exception):
        track_upstream_failure(PROVIDER, operation)
        logger.error(
            "external_api_failure",
            extra={
                "provider": PROVIDER,
                "operation": operation,
                "symbol": symbol,
                "duration_ms": (time() - start_time) * 1000,
                "error": str(error),
            },
        )
        return UpstreamUnavailable(
            f"{operation} failed for {symbol}: {error}",
            provider=PROVIDER,
            status_code=getattr(error, "status_code", None),
        )

    def _timeout_error(self, operation: str, symbol: str, start_time: float):
        track_upstream_failure(PROVIDER, operation)
        logger.error(
            "external_api_timeout",
            extra={
                "provider": PROVIDER,
                "operation": operation,
                "symbol": symbol,
                "duration_ms": (time() - start_time) * 1000,
            },
        )
        return UpstreamUnavailable(
            f"Request timeout for {symbol}", provider=PROVIDER, timed_out=True
        )

    async def get_quote(self, symbol: str) -> QuoteData:
        """Get current quote from Finnhub."""
        try:
            symbol = validate_symbol(symbol)
        except SymbolValidationError as e:
            raise UpstreamUnavailable(str(e), provider=PROVIDER, status_code=400)

        logger.info(
            "external_api_call",
            extra={"provider": PROVIDER, "operation": "get_quote", "symbol": symbol},
        )
        start_time = time()

        try:
            # c(current), d(change), dp(change percent), pc(previous close)
            quote = await asyncio.wait_for(
                asyncio.to_thread(self._client.quote, symbol),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            raise self._timeout_error("get_quote", symbol, start_time)
        except Exception as e:
            raise self._failure("get_quote", symbol, start_time, e)

        # Finnhub answers unknown symbols with an all-zero quote
        if not quote or not quote.get("c"):
            raise UpstreamUnavailable(
                f"No price data available for {symbol}", provider=PROVIDER, status_code=404
            )

        logger.info(
            "external_api_success",
            extra={
                "provider": PROVIDER,
                "operation": "get_quote",
                "symbol": symbol,
                "duration_ms": (time() - start_time) * 1000,
                "price": quote["c"],
            },
        )

        return QuoteData(
            symbol=symbol,
            price=Decimal(str(quote["c"])),
            change_percent=Decimal(str(quote["dp"])).quantize(Decimal("0.01"))
            if quote.get("dp") is not None
            else None,
        )

    async def get_recommendation(self, symbol: str) -> RecommendationTrend:
        """Latest period from Finnhub's monthly recommendation trends."""
        try:
            symbol = validate_symbol(symbol)
        except SymbolValidationError as e:
            raise UpstreamUnavailable(str(e), provider=PROVIDER, status_code=400)

        logger.info(
            "external_api_call",
            extra={"provider": PROVIDER, "operation": "get_recommendation", "symbol": symbol},
        )
        start_time = time()

        try:
            trends = await asyncio.wait_for(
                asyncio.to_thread(self._client.recommendation_trends, symbol),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            raise self._timeout_error("get_recommendation", symbol, start_time)
        except Exception as e:
            raise self._failure("get_recommendation", symbol, start_time, e)

        if not trends:
            raise UpstreamUnavailable(
                f"No recommendation trend for {symbol}", provider=PROVIDER, status_code=404
            )

        # Periods are "YYYY-MM-01" strings; pick the newest regardless of order
        latest = max(trends, key=lambda t: t.get("period") or "")
        return RecommendationTrend(
            symbol=symbol,
            period=latest.get("period"),
            strong_buy=int(latest.get("strongBuy") or 0),
            buy=int(latest.get("buy") or 0),
            hold=int(latest.get("hold") or 0),
            sell=int(latest.get("sell") or 0),
            strong_sell=int(latest.get("strongSell") or 0),
        )

    async def get_market_list(self, list_type: MarketListType, limit: int) -> List[ScreenerQuote]:
        raise UpstreamUnavailable(
            f"Finnhub does not provide the {list_type.value} screener", provider=PROVIDER
        )

    def get_rate_limits(self) -> Dict[str, int]:
        return {"calls_per_minute": 60, "calls_per_day": 86400}

    def get_provider_name(self) -> str:
        return "Finnhub"
