"""
Price cache backed by the ``price_snapshots`` table.

Snapshots are only written after a successful provider call and are never
deleted. With ``PRICE_TTL_MINUTES`` unset a cached price is served until it
is explicitly refreshed.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from finsight.config import settings
from finsight.core.exceptions import UpstreamUnavailable
from finsight.models.price_snapshot import PriceSnapshot
from finsight.services.cache_policy import CachedValue, get_or_refresh, is_stale
from finsight.services.market_data import MarketDataProvider, QuoteData, get_market_data_provider
from finsight.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


def price_ttl() -> Optional[timedelta]:
    if settings.PRICE_TTL_MINUTES is None:
        return None
    return timedelta(minutes=settings.PRICE_TTL_MINUTES)


class PriceCacheService:
    """Last-known quote per symbol, refreshed through the market data provider."""

    CACHE_NAME = "price"

    def __init__(self, db: AsyncSession, provider: Optional[MarketDataProvider] = None):
        self.db = db
        self._provider = provider

    @property
    def provider(self) -> MarketDataProvider:
        if self._provider is None:
            self._provider = get_market_data_provider()
        return self._provider

    async def get_snapshot(self, symbol: str) -> Optional[PriceSnapshot]:
        result = await self.db.execute(
            select(PriceSnapshot)
            .where(PriceSnapshot.symbol == symbol)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_snapshots(self, symbols: Iterable[str]) -> Dict[str, PriceSnapshot]:
        symbols = list(set(symbols))
        if not symbols:
            return {}
        result = await self.db.execute(
            select(PriceSnapshot)
            .where(PriceSnapshot.symbol.in_(symbols))
            .execution_options(populate_existing=True)
        )
        return {snapshot.symbol: snapshot for snapshot in result.scalars().all()}

    async def prices_for(self, symbols: Iterable[str]) -> Dict[str, Decimal]:
        """Cached prices keyed by symbol; symbols with no snapshot are absent."""
        snapshots = await self.get_snapshots(symbols)
        return {symbol: Decimal(s.price) for symbol, s in snapshots.items()}

    async def fetch(self, symbol: str) -> QuoteData:
        return await self.provider.get_quote(symbol)

    async def persist(self, quote: QuoteData, refreshed_at: datetime) -> PriceSnapshot:
        """Write a fetched quote to the cache without committing."""
        snapshot = await self.get_snapshot(quote.symbol)
        if snapshot is None:
            snapshot = PriceSnapshot(symbol=quote.symbol)
            self.db.add(snapshot)

        snapshot.price = quote.price
        snapshot.change_percent = quote.change_percent
        if quote.name:
            snapshot.name = quote.name
        snapshot.last_refreshed = refreshed_at
        await self.db.flush()
        return snapshot

    async def _store(self, symbol: str, quote: QuoteData, refreshed_at: datetime) -> PriceSnapshot:
        snapshot = await self.persist(quote, refreshed_at)
        await self.db.commit()
        return snapshot

    async def get_price(
        self, symbol: str, ttl: Optional[timedelta] = None
    ) -> CachedValue[PriceSnapshot]:
        """Serve a cached price, fetching it when absent or older than the TTL."""
        return await get_or_refresh(
            symbol,
            ttl if ttl is not None else price_ttl(),
            load=self.get_snapshot,
            fetch=self.fetch,
            store=self._store,
            last_refreshed=lambda s: s.last_refreshed,
            cache=self.CACHE_NAME,
        )

    async def refresh(self, symbol: str) -> PriceSnapshot:
        """Force a provider call and overwrite the cached price."""
        quote = await self.fetch(symbol)
        return await self._store(symbol, quote, utc_now())

    async def refresh_stale(self, symbols: Iterable[str]) -> List[str]:
        """
        Refresh missing or expired prices, one symbol at a time.

        Failures keep the previous snapshot. Returns the symbols that could
        not be refreshed.
        """
        symbols = set(symbols)
        ttl = price_ttl()
        snapshots = await self.get_snapshots(symbols)
        failed = []

        for symbol in sorted(symbols):
            snapshot = snapshots.get(symbol)
            if snapshot is not None and not is_stale(snapshot.last_refreshed, ttl):
                continue
            try:
                await self.refresh(symbol)
            except UpstreamUnavailable as e:
                logger.warning(f"Price refresh failed for {symbol}: {e}")
                failed.append(symbol)

        return failed
