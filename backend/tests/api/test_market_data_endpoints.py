"""Integration tests for market data API endpoints."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from fastapi import status
from sqlalchemy import update

from finsight.config import settings
from finsight.core.exceptions import UpstreamUnavailable
from finsight.models.market_list_entry import MarketListEntry, MarketListType
from finsight.models.recommendation_snapshot import RecommendationSnapshot
from finsight.services.market_data.base_provider import RecommendationTrend, ScreenerQuote
from finsight.utils.datetime_utils import utc_now

BASE = "/api/v1/market-data"


@pytest.mark.integration
@pytest.mark.asyncio
class TestFeaturedEndpoints:
    """Test suite for featured stocks."""

    async def test_empty_featured_list(self, async_client, use_mock_provider):
        response = await async_client.get(f"{BASE}/featured")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == []

    async def test_add_and_list_featured(self, async_client, use_mock_provider):
        """Should fetch the quote, persist it and list the symbol."""
        response = await async_client.post(f"{BASE}/featured", json={"symbol": "aapl"})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["symbol"] == "AAPL"
        assert data["list_name"] == "featured"
        assert Decimal(data["price"]["price"]) == Decimal("150.25")
        assert data["recommendation"]["action"] == "BUY"

        featured = (await async_client.get(f"{BASE}/featured")).json()
        assert [(f["symbol"], Decimal(f["change_percent"])) for f in featured] == [
            ("AAPL", Decimal("1.25"))
        ]

    async def test_add_featured_unknown_symbol(self, async_client, use_mock_provider):
        """Should pass through a 404 from the provider."""
        use_mock_provider.get_quote = AsyncMock(
            side_effect=UpstreamUnavailable("No price data available for ZZZZ", status_code=404)
        )

        response = await async_client.post(f"{BASE}/featured", json={"symbol": "ZZZZ"})

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error"] == "upstream_unavailable"

    async def test_add_featured_timeout(self, async_client, use_mock_provider):
        use_mock_provider.get_quote = AsyncMock(
            side_effect=UpstreamUnavailable("timed out", timed_out=True)
        )

        response = await async_client.post(f"{BASE}/featured", json={"symbol": "AAPL"})

        assert response.status_code == status.HTTP_504_GATEWAY_TIMEOUT

    async def test_add_featured_invalid_symbol(self, async_client, use_mock_provider):
        response = await async_client.post(f"{BASE}/featured", json={"symbol": "$$$"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "invalid_symbol"

    async def test_remove_featured(self, async_client, use_mock_provider):
        await async_client.post(f"{BASE}/featured", json={"symbol": "AAPL"})

        first = await async_client.delete(f"{BASE}/featured/AAPL")
        second = await async_client.delete(f"{BASE}/featured/AAPL")

        assert first.status_code == status.HTTP_200_OK
        assert second.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.integration
@pytest.mark.asyncio
class TestRecommendationEndpoints:
    """Test suite for recommendations."""

    async def test_get_recommendation(self, async_client, use_mock_provider):
        response = await async_client.get(f"{BASE}/recommendations/AAPL")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total_analysts"] == 40
        assert data["action"] == "BUY"
        assert Decimal(data["score"]) == Decimal("1.15")
        assert data["stale"] is False

    async def test_stale_recommendation_is_flagged(self, async_client, db, use_mock_provider):
        """Should serve the old row with stale=true when the refresh fails."""
        await async_client.get(f"{BASE}/recommendations/AAPL")
        await db.execute(
            update(RecommendationSnapshot).values(
                last_refreshed=utc_now() - timedelta(hours=settings.RECOMMENDATION_TTL_HOURS + 1)
            )
        )
        await db.commit()
        use_mock_provider.get_recommendation = AsyncMock(
            side_effect=UpstreamUnavailable("rate limited", status_code=429)
        )

        response = await async_client.get(f"{BASE}/recommendations/AAPL")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["stale"] is True
        assert response.json()["strong_buy"] == 10

    async def test_rate_limited_without_cache(self, async_client, use_mock_provider):
        use_mock_provider.get_recommendation = AsyncMock(
            side_effect=UpstreamUnavailable("rate limited", status_code=429)
        )

        response = await async_client.get(f"{BASE}/recommendations/AAPL")

        assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS

    async def test_upstream_server_error_is_bad_gateway(self, async_client, use_mock_provider):
        use_mock_provider.get_recommendation = AsyncMock(
            side_effect=UpstreamUnavailable("boom", status_code=500)
        )

        response = await async_client.get(f"{BASE}/recommendations/AAPL")

        assert response.status_code == status.HTTP_502_BAD_GATEWAY

    async def test_watchlist(self, async_client, use_mock_provider):
        """Should list the seeded watchlist plus additions."""
        use_mock_provider.get_recommendation = AsyncMock(
            side_effect=lambda symbol: RecommendationTrend(symbol=symbol, hold=4)
        )

        added = await async_client.post(f"{BASE}/recommendations", json={"symbol": "pltr"})
        response = await async_client.get(f"{BASE}/recommendations")

        assert added.status_code == status.HTTP_200_OK
        items = response.json()
        symbols = [item["symbol"] for item in items]
        assert symbols == settings.DEFAULT_RECOMMENDATION_SYMBOLS + ["PLTR"]
        assert all(item["recommendation"]["action"] == "HOLD" for item in items)


@pytest.mark.integration
@pytest.mark.asyncio
class TestMarketListEndpoints:
    """Test suite for screener lists."""

    async def test_get_list(self, async_client, use_mock_provider):
        use_mock_provider.get_market_list = AsyncMock(
            return_value=[
                ScreenerQuote(symbol=f"S{i}", price=Decimal("1.5"), volume=i) for i in range(10)
            ]
        )

        response = await async_client.get(f"{BASE}/lists/most-active")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["list_type"] == "most-active"
        assert [e["rank"] for e in data["entries"]] == list(range(1, 11))
        assert data["last_refreshed"] is not None
        assert data["stale"] is False

    async def test_short_list_served_stale_when_refresh_fails(
        self, async_client, db, use_mock_provider
    ):
        """Should serve a partial list, flagged stale, when it cannot be refetched."""
        db.add_all(
            [
                MarketListEntry(
                    list_type=MarketListType.LOSERS,
                    rank=i + 1,
                    symbol=f"L{i}",
                    last_refreshed=utc_now(),
                )
                for i in range(4)
            ]
        )
        await db.commit()
        use_mock_provider.get_market_list = AsyncMock(side_effect=UpstreamUnavailable("down"))

        response = await async_client.get(f"{BASE}/lists/losers")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert len(data["entries"]) == 4
        assert data["stale"] is True

    async def test_unknown_list(self, async_client, use_mock_provider):
        response = await async_client.get(f"{BASE}/lists/penny-stocks")
        assert response.status_code == 422

    async def test_provider_info(self, async_client, use_mock_provider):
        response = await async_client.get(f"{BASE}/provider")

        assert response.json() == {"name": "Mock Provider", "rate_limits": {"calls_per_minute": 0}}
