"""
Persisted symbol sets: featured stocks and the recommendation watchlist.

Membership lives in ``tracked_symbols`` so additions survive restarts and
concurrent requests. The recommendation watchlist is seeded from
DEFAULT_RECOMMENDATION_SYMBOLS the first time it is read.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from finsight.config import settings
from finsight.core.exceptions import InvalidSymbol, UpstreamUnavailable
from finsight.models.price_snapshot import PriceSnapshot
from finsight.models.recommendation_snapshot import RecommendationSnapshot
from finsight.models.tracked_symbol import TrackedList, TrackedSymbol
from finsight.services.market_data import MarketDataProvider
from finsight.services.market_data.security import SymbolValidationError, validate_symbol
from finsight.services.price_cache_service import PriceCacheService
from finsight.services.recommendation_service import RecommendationCacheService
from finsight.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class TrackResult:
    """Outcome of adding a symbol to a tracked list."""

    symbol: str
    list_name: TrackedList
    price: Optional[PriceSnapshot] = None
    recommendation: Optional[RecommendationSnapshot] = None
    errors: Dict[str, str] = field(default_factory=dict)


def clean_symbol(symbol: Optional[str]) -> str:
    try:
        return validate_symbol(symbol)
    except SymbolValidationError as e:
        raise InvalidSymbol(str(e))


class TrackedSymbolsService:
    """Featured stocks and recommendation watchlist membership."""

    def __init__(self, db: AsyncSession, provider: Optional[MarketDataProvider] = None):
        self.db = db
        self.prices = PriceCacheService(db, provider)
        self.recommendations = RecommendationCacheService(db, provider)

    async def list_symbols(self, list_name: TrackedList) -> List[str]:
        """Members of a list in the order they were added."""
        if list_name is TrackedList.RECOMMENDATIONS:
            await self.seed_defaults()

        result = await self.db.execute(
            select(TrackedSymbol.symbol)
            .where(TrackedSymbol.list_name == list_name)
            .order_by(TrackedSymbol.created_at, TrackedSymbol.id)
        )
        return list(result.scalars().all())

    async def seed_defaults(self) -> int:
        """Seed the recommendation watchlist with the defaults while it is empty."""
        count = await self.db.scalar(
            select(func.count())
            .select_from(TrackedSymbol)
            .where(TrackedSymbol.list_name == TrackedList.RECOMMENDATIONS)
        )
        if count:
            return 0

        for symbol in settings.DEFAULT_RECOMMENDATION_SYMBOLS:
            await self._insert_member(TrackedList.RECOMMENDATIONS, clean_symbol(symbol))
        await self.db.commit()
        logger.info(
            f"Seeded recommendation watchlist with {len(settings.DEFAULT_RECOMMENDATION_SYMBOLS)} symbols"
        )
        return len(settings.DEFAULT_RECOMMENDATION_SYMBOLS)

    async def _insert_member(self, list_name: TrackedList, symbol: str) -> None:
        """Add membership, ignoring a symbol that is already in the list."""
        values = {"list_name": list_name, "symbol": symbol, "created_at": utc_now()}
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(TrackedSymbol).values(**values).on_conflict_do_nothing()
        elif dialect == "sqlite":
            stmt = sqlite_insert(TrackedSymbol).values(**values).on_conflict_do_nothing()
        else:
            exists = await self.db.scalar(
                select(TrackedSymbol.id).where(
                    TrackedSymbol.list_name == list_name, TrackedSymbol.symbol == symbol
                )
            )
            if exists is None:
                self.db.add(TrackedSymbol(list_name=list_name, symbol=symbol))
                await self.db.flush()
            return
        await self.db.execute(stmt)

    async def _fetch_both(self, symbol: str) -> Tuple[object, object]:
        """
        Fetch the quote and the recommendation trend concurrently.

        Each result is either the provider value or the UpstreamUnavailable it
        raised; one failing never cancels the other.
        """
        quote, trend = await asyncio.gather(
            self.prices.fetch(symbol),
            self.recommendations.fetch(symbol),
            return_exceptions=True,
        )
        for outcome in (quote, trend):
            if isinstance(outcome, BaseException) and not isinstance(outcome, UpstreamUnavailable):
                raise outcome
        return quote, trend

    async def add(self, list_name: TrackedList, symbol: str) -> TrackResult:
        """
        Track ``symbol`` in ``list_name`` and refresh its cached data.

        Price and recommendation are fetched concurrently, then persisted in
        turn on this session. A featured stock needs a price: without one it
        is not added and the upstream error is raised. Watchlist membership
        is kept even when the recommendation fetch fails.

        Raises:
            InvalidSymbol: Malformed ticker
            UpstreamUnavailable: The fetch the list depends on failed
        """
        symbol = clean_symbol(symbol)
        if list_name is TrackedList.RECOMMENDATIONS:
            await self.seed_defaults()

        quote, trend = await self._fetch_both(symbol)
        now = utc_now()
        result = TrackResult(symbol=symbol, list_name=list_name)

        if isinstance(quote, UpstreamUnavailable):
            result.errors["price"] = str(quote)
        else:
            result.price = await self.prices.persist(quote, now)

        if isinstance(trend, UpstreamUnavailable):
            result.errors["recommendation"] = str(trend)
        else:
            result.recommendation = await self.recommendations.persist(trend, now)

        primary_error = quote if list_name is TrackedList.FEATURED else trend
        if list_name is TrackedList.RECOMMENDATIONS or result.price is not None:
            await self._insert_member(list_name, symbol)

        await self.db.commit()

        if isinstance(primary_error, UpstreamUnavailable):
            raise primary_error

        logger.info(f"Tracking {symbol} in {list_name.value}")
        return result

    async def remove(self, list_name: TrackedList, symbol: str) -> bool:
        """Drop ``symbol`` from the list; cached prices and recommendations are kept."""
        symbol = clean_symbol(symbol)
        result = await self.db.execute(
            delete(TrackedSymbol).where(
                TrackedSymbol.list_name == list_name, TrackedSymbol.symbol == symbol
            )
        )
        await self.db.commit()
        return bool(result.rowcount)

    async def list_featured(self) -> List[Tuple[str, Optional[PriceSnapshot]]]:
        """Featured symbols with their cached price, if any."""
        result = await self.db.execute(
            select(TrackedSymbol.symbol, PriceSnapshot)
            .select_from(TrackedSymbol)
            .outerjoin(PriceSnapshot, PriceSnapshot.symbol == TrackedSymbol.symbol)
            .where(TrackedSymbol.list_name == TrackedList.FEATURED)
            .order_by(TrackedSymbol.created_at, TrackedSymbol.id)
        )
        return [(row[0], row[1]) for row in result.all()]
