"""
Yahoo Finance market data via the RapidAPI "yahoo-finance15" endpoints.

- Quotes: price from the financial-data module, day change from /quotes
- Analyst recommendation trends
- Screener lists (day_gainers, day_losers, most_actives)

Requires: RAPIDAPI_KEY environment variable.
"""

import asyncio
import logging
from time import time
from typing import Any, Dict, List, Optional

import httpx

from finsight.config import settings
from finsight.core.exceptions import UpstreamUnavailable
from finsight.core.metrics import track_upstream_failure
from finsight.models.market_list_entry import MarketListType

from .base_provider import MarketDataProvider, QuoteData, RecommendationTrend, ScreenerQuote
from .security import (
    PriceValidationError,
    SymbolValidationError,
    sanitize_text,
    to_decimal,
    validate_quote_response,
    validate_symbol,
)

logger = logging.getLogger(__name__)

PROVIDER = "yahoo_rapidapi"

MODULES_PATH = "/api/v1/markets/stock/modules"
QUOTES_PATH = "/api/v1/markets/stock/quotes"
SCREENER_PATH = "/api/v1/markets/screener"


class YahooRapidApiProvider(MarketDataProvider):
    """Yahoo Finance over RapidAPI, called with httpx."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        host: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        api_key = api_key or settings.RAPIDAPI_KEY
        if not api_key:
            raise ValueError(
                "RAPIDAPI_KEY is not configured. "
                "Subscribe to yahoo-finance15 at https://rapidapi.com/"
            )
        self._host = host or settings.RAPIDAPI_HOST
        self._headers = {
            "x-rapidapi-key": api_key,
            "x-rapidapi-host": self._host,
        }
        self._transport = transport
        self._timeout = httpx.Timeout(settings.REQUEST_TIMEOUT_SECONDS)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"https://{self._host}",
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _get(
        self, client: httpx.AsyncClient, path: str, params: Dict[str, str], operation: str
    ) -> Any:
        """GET a RapidAPI endpoint and return the ``body`` of the JSON envelope."""
        logger.info(
            "external_api_call",
            extra={"provider": PROVIDER, "operation": operation, "params": params},
        )
        start_time = time()

        try:
            response = await client.get(path, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException:
            track_upstream_failure(PROVIDER, operation)
            logger.error(
                "external_api_timeout",
                extra={
                    "provider": PROVIDER,
                    "operation": operation,
                    "duration_ms": (time() - start_time) * 1000,
                    "params": params,
                },
            )
            raise UpstreamUnavailable(
                f"{operation} timed out", provider=PROVIDER, timed_out=True
            )
        except httpx.HTTPStatusError as e:
            track_upstream_failure(PROVIDER, operation)
            logger.error(
                "external_api_failure",
                extra={
                    "provider": PROVIDER,
                    "operation": operation,
                    "status_code": e.response.status_code,
                    "params": params,
                },
            )
            raise UpstreamUnavailable(
                f"{operation} failed with HTTP {e.response.status_code}",
                provider=PROVIDER,
                status_code=e.response.status_code,
            )
        except (httpx.HTTPError, ValueError) as e:
            # ValueError covers an undecodable JSON body
            track_upstream_failure(PROVIDER, operation)
            logger.error(
                "external_api_failure",
                extra={"provider": PROVIDER, "operation": operation, "error": str(e), "params": params},
            )
            raise UpstreamUnavailable(f"{operation} failed: {e}", provider=PROVIDER)

        logger.info(
            "external_api_success",
            extra={
                "provider": PROVIDER,
                "operation": operation,
                "duration_ms": (time() - start_time) * 1000,
            },
        )
        if not isinstance(payload, dict):
            raise UpstreamUnavailable(f"{operation} returned an unexpected payload", provider=PROVIDER)
        return payload.get("body")

    @staticmethod
    def _symbol(symbol: str) -> str:
        try:
            return validate_symbol(symbol)
        except SymbolValidationError as e:
            raise UpstreamUnavailable(str(e), provider=PROVIDER, status_code=400)

    async def get_quote(self, symbol: str) -> QuoteData:
        """Price and change percent come from two endpoints, fetched concurrently."""
        symbol = self._symbol(symbol)

        async with self._client() as client:
            financial_data, quotes = await asyncio.gather(
                self._get(
                    client,
                    MODULES_PATH,
                    {"ticker": symbol, "module": "financial-data"},
                    "get_quote_price",
                ),
                self._get(client, QUOTES_PATH, {"ticker": symbol}, "get_quote_change"),
            )

        current_price = (financial_data or {}).get("currentPrice") if isinstance(financial_data, dict) else None
        price = to_decimal(current_price, "currentPrice")
        if price is None:
            raise UpstreamUnavailable(
                f"No price data available for {symbol}", provider=PROVIDER, status_code=404
            )

        change_percent = None
        name = None
        if isinstance(quotes, list) and quotes:
            change_percent = quotes[0].get("regularMarketChangePercent")
            name = quotes[0].get("shortName") or quotes[0].get("longName")
        else:
            logger.warning(f"No change data returned for {symbol}")

        try:
            validated = validate_quote_response(
                {
                    "symbol": symbol,
                    "price": price,
                    "name": name,
                    "change_percent": change_percent,
                },
                symbol,
            )
        except PriceValidationError as e:
            raise UpstreamUnavailable(str(e), provider=PROVIDER)

        return QuoteData(**validated.model_dump())

    async def get_recommendation(self, symbol: str) -> RecommendationTrend:
        symbol = self._symbol(symbol)

        async with self._client() as client:
            body = await self._get(
                client,
                MODULES_PATH,
                {"ticker": symbol, "module": "recommendation-trend"},
                "get_recommendation",
            )

        trend_list = body.get("trend") if isinstance(body, dict) else None
        if not trend_list:
            raise UpstreamUnavailable(
                f"No recommendation trend for {symbol}", provider=PROVIDER, status_code=404
            )

        # The first entry is the current period ("0m")
        latest = trend_list[0]
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
        async with self._client() as client:
            body = await self._get(
                client, SCREENER_PATH, {"list": list_type.screener_id}, "get_market_list"
            )

        if not isinstance(body, list):
            raise UpstreamUnavailable(
                f"Screener {list_type.screener_id} returned no quotes", provider=PROVIDER
            )
        return [screener_quote_from_yahoo(item) for item in body[:limit] if item.get("symbol")]

    def get_rate_limits(self) -> Dict[str, int]:
        return {"calls_per_month": 500}

    def get_provider_name(self) -> str:
        return "Yahoo Finance (RapidAPI)"


def screener_quote_from_yahoo(item: Dict[str, Any]) -> ScreenerQuote:
    """Map a Yahoo screener quote dict onto ScreenerQuote."""
    volume = to_decimal(item.get("regularMarketVolume"), "regularMarketVolume")
    return ScreenerQuote(
        symbol=str(item["symbol"]).upper(),
        name=sanitize_text(item.get("shortName") or item.get("longName")),
        price=to_decimal(item.get("regularMarketPrice"), "regularMarketPrice"),
        change=to_decimal(item.get("regularMarketChange"), "regularMarketChange"),
        change_percent=to_decimal(
            item.get("regularMarketChangePercent"), "regularMarketChangePercent"
        ),
        volume=int(volume) if volume is not None else None,
        market_cap=to_decimal(item.get("marketCap"), "marketCap"),
        fifty_two_week_range=sanitize_text(item.get("fiftyTwoWeekRange"), max_length=64),
    )
