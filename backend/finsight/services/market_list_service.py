"""
Market screener list cache (gainers, losers, most active).

The rows of a list are replaced together on every refresh. A list is served
from cache only while it is younger than MARKET_LIST_TTL_HOURS *and* holds at
least MARKET_LIST_MIN_ROWS rows. A short fetch never replaces a cached list;
it is only stored when nothing was cached, and is served flagged stale.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from finsight.config import settings
from finsight.models.market_list_entry import MarketListEntry, MarketListType
from finsight.services.cache_policy import CachedValue, get_or_refresh
from finsight.services.market_data import (
    MarketDataProvider,
    ScreenerQuote,
    get_market_data_provider,
)

logger = logging.getLogger(__name__)


def list_last_refreshed(entries: List[MarketListEntry]) -> Optional[datetime]:
    """A list is as old as its oldest row; any unstamped row makes it stale."""
    stamps = [entry.last_refreshed for entry in entries]
    if not stamps or any(stamp is None for stamp in stamps):
        return None
    return min(stamps)


class MarketListCacheService:
    """Serve-or-refresh access to the cached screener lists."""

    CACHE_NAME = "market_list"

    def __init__(self, db: AsyncSession, provider: Optional[MarketDataProvider] = None):
        self.db = db
        self._provider = provider

    @property
    def provider(self) -> MarketDataProvider:
        if self._provider is None:
            self._provider = get_market_data_provider()
        return self._provider

    @staticmethod
    def ttl() -> timedelta:
        return timedelta(hours=settings.MARKET_LIST_TTL_HOURS)

    @staticmethod
    def is_complete(entries: List[MarketListEntry]) -> bool:
        return len(entries) >= settings.MARKET_LIST_MIN_ROWS

    @staticmethod
    def is_complete_fetch(quotes: List[ScreenerQuote]) -> bool:
        """A fetched list may replace a cached one only with enough distinct symbols."""
        return len({quote.symbol for quote in quotes}) >= settings.MARKET_LIST_MIN_ROWS

    async def get_entries(self, list_type: MarketListType) -> Optional[List[MarketListEntry]]:
        """Cached rows in rank order, or None when the list was never stored."""
        result = await self.db.execute(
            select(MarketListEntry)
            .where(MarketListEntry.list_type == list_type)
            .order_by(MarketListEntry.rank)
            .execution_options(populate_existing=True)
        )
        entries = list(result.scalars().all())
        return entries or None

    async def fetch(self, list_type: MarketListType) -> List[ScreenerQuote]:
        return await self.provider.get_market_list(list_type, settings.MARKET_LIST_SIZE)

    async def _store(
        self,
        list_type: MarketListType,
        quotes: List[ScreenerQuote],
        refreshed_at: datetime,
    ) -> List[MarketListEntry]:
        """Replace every row of ``list_type`` in one transaction."""
        await self.db.execute(delete(MarketListEntry).where(MarketListEntry.list_type == list_type))

        entries = []
        seen = set()
        for quote in quotes:
            if quote.symbol in seen:
                continue
            seen.add(quote.symbol)
            entries.append(
                MarketListEntry(
                    list_type=list_type,
                    rank=len(entries) + 1,
                    symbol=quote.symbol,
                    name=quote.name,
                    price=quote.price,
                    change=quote.change,
                    change_percent=quote.change_percent,
                    volume=quote.volume,
                    market_cap=quote.market_cap,
                    fifty_two_week_range=quote.fifty_two_week_range,
                    last_refreshed=refreshed_at,
                )
            )

        if len(entries) < settings.MARKET_LIST_MIN_ROWS:
            logger.warning(
                f"Screener {list_type.value} returned {len(entries)} rows "
                f"(expected {settings.MARKET_LIST_MIN_ROWS}); storing it as the only copy"
            )

        self.db.add_all(entries)
        await self.db.commit()
        return entries

    async def get_cached_market_list(
        self, list_type: MarketListType
    ) -> CachedValue[List[MarketListEntry]]:
        """
        Serve a screener list, refreshing it when stale or incomplete.

        Raises:
            UpstreamUnavailable: Refresh failed and the list was never cached
        """
        return await get_or_refresh(
            list_type,
            self.ttl(),
            load=self.get_entries,
            fetch=self.fetch,
            store=self._store,
            last_refreshed=list_last_refreshed,
            is_complete=self.is_complete,
            accept=self.is_complete_fetch,
            cache=self.CACHE_NAME,
        )
