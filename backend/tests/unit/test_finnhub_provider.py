"""Tests for the Finnhub provider."""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from finsight.core.exceptions import UpstreamUnavailable
from finsight.models.market_list_entry import MarketListType
from finsight.services.market_data.finnhub_provider import FinnhubProvider


class FakeFinnhubAPIException(Exception):
    def __init__(self, status_code):
        super().__init__(f"FinnhubAPIException(status_code: {status_code})")
        self.status_code = status_code


@pytest.fixture
def mock_client():
    with patch("finsight.services.market_data.finnhub_provider.finnhub") as finnhub:
        client = MagicMock()
        finnhub.Client.return_value = client
        yield client


@pytest.fixture
def provider(mock_client):
    return FinnhubProvider(api_key="test-key")


@pytest.mark.unit
class TestFinnhubProvider:
    """Test suite for FinnhubProvider."""

    def test_init_requires_api_key(self, monkeypatch):
        """Should raise ValueError if API key not configured."""
        monkeypatch.setattr("finsight.config.settings.FINNHUB_API_KEY", None)

        with pytest.raises(ValueError, match="FINNHUB_API_KEY"):
            FinnhubProvider()

    @pytest.mark.asyncio
    async def test_get_quote_success(self, provider, mock_client):
        mock_client.quote.return_value = {"c": 187.5, "d": 2.3, "dp": 1.2345, "pc": 185.2}

        quote = await provider.get_quote("aapl")

        mock_client.quote.assert_called_once_with("AAPL")
        assert quote.price == Decimal("187.5")
        assert quote.change_percent == Decimal("1.23")

    @pytest.mark.asyncio
    async def test_unknown_symbol_zero_quote(self, provider, mock_client):
        """Should treat Finnhub's all-zero quote as not found."""
        mock_client.quote.return_value = {"c": 0, "d": None, "dp": None, "pc": 0}

        with pytest.raises(UpstreamUnavailable) as exc_info:
            await provider.get_quote("ZZZZ")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_api_error_keeps_status(self, provider, mock_client):
        mock_client.quote.side_effect = FakeFinnhubAPIException(429)

        with pytest.raises(UpstreamUnavailable) as exc_info:
            await provider.get_quote("AAPL")

        assert exc_info.value.status_code == 429
        assert exc_info.value.provider == "finnhub"

    @pytest.mark.asyncio
    async def test_get_recommendation_picks_newest_period(self, provider, mock_client):
        """Should pick the newest period regardless of list order."""
        mock_client.recommendation_trends.return_value = [
            {"period": "2026-01-01", "strongBuy": 1, "buy": 1, "hold": 1, "sell": 1, "strongSell": 1},
            {"period": "2026-03-01", "strongBuy": 12, "buy": 24, "hold": 7, "sell": 2, "strongSell": 0},
            {"period": "2026-02-01", "strongBuy": 2, "buy": 2, "hold": 2, "sell": 2, "strongSell": 2},
        ]

        trend = await provider.get_recommendation("MSFT")

        assert trend.period == "2026-03-01"
        assert trend.strong_buy == 12
        assert trend.buy == 24

    @pytest.mark.asyncio
    async def test_get_recommendation_empty(self, provider, mock_client):
        mock_client.recommendation_trends.return_value = []

        with pytest.raises(UpstreamUnavailable):
            await provider.get_recommendation("MSFT")

    @pytest.mark.asyncio
    async def test_market_lists_unsupported(self, provider):
        """Should fail screener requests so cached lists are served instead."""
        with pytest.raises(UpstreamUnavailable):
            await provider.get_market_list(MarketListType.GAINERS, 10)
