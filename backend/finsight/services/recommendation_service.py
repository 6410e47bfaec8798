"""
Analyst recommendation cache and the weighted recommendation signal.

Recommendation counts are cached per symbol in ``recommendation_snapshots``
and refreshed once they are older than RECOMMENDATION_TTL_HOURS.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from finsight.config import settings
from finsight.core.exceptions import InvalidSymbol, UpstreamUnavailable
from finsight.models.recommendation_snapshot import RecommendationSnapshot
from finsight.services.cache_policy import CachedValue, get_or_refresh
from finsight.services.market_data import (
    MarketDataProvider,
    RecommendationTrend,
    get_market_data_provider,
)
from finsight.services.market_data.security import SymbolValidationError, validate_symbol

logger = logging.getLogger(__name__)

STRONG_BUY = "STRONG BUY"
BUY = "BUY"
HOLD = "HOLD"
SELL = "SELL"
STRONG_SELL = "STRONG SELL"


@dataclass
class RecommendationSignal:
    action: str
    score: Decimal
    confidence: Decimal
    total_analysts: int


@dataclass
class RecommendationLookup:
    """Result of a cache lookup for one tracked symbol."""

    symbol: str
    cached: Optional[CachedValue[RecommendationSnapshot]] = None
    error: Optional[str] = None


def score_recommendation(
    strong_buy: int, buy: int, hold: int, sell: int, strong_sell: int
) -> RecommendationSignal:
    """
    Collapse analyst counts into a single weighted signal.

    score = (3*strongBuy + buy - sell - 3*strongSell) / total analysts, so it
    ranges from -3 (all strong sell) to +3 (all strong buy). Confidence is
    |score| / 3 capped at 1. With no analysts the signal is a neutral HOLD.
    """
    total = strong_buy + buy + hold + sell + strong_sell
    if total == 0:
        return RecommendationSignal(HOLD, Decimal("0"), Decimal("0"), 0)

    score = Decimal(3 * strong_buy + buy - sell - 3 * strong_sell) / Decimal(total)

    if score >= Decimal("1.5"):
        action = STRONG_BUY
    elif score >= Decimal("0.5"):
        action = BUY
    elif score <= Decimal("-1.5"):
        action = STRONG_SELL
    elif score <= Decimal("-0.5"):
        action = SELL
    else:
        action = HOLD

    confidence = min(abs(score) / Decimal(3), Decimal(1))
    return RecommendationSignal(
        action=action,
        score=score.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        confidence=confidence.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        total_analysts=total,
    )


def signal_for(snapshot: RecommendationSnapshot) -> RecommendationSignal:
    return score_recommendation(
        snapshot.strong_buy,
        snapshot.buy,
        snapshot.hold,
        snapshot.sell,
        snapshot.strong_sell,
    )


class RecommendationCacheService:
    """Serve-or-refresh access to cached analyst recommendations."""

    CACHE_NAME = "recommendation"

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
        return timedelta(hours=settings.RECOMMENDATION_TTL_HOURS)

    async def get_snapshot(self, symbol: str) -> Optional[RecommendationSnapshot]:
        result = await self.db.execute(
            select(RecommendationSnapshot)
            .where(RecommendationSnapshot.symbol == symbol)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def fetch(self, symbol: str) -> RecommendationTrend:
        return await self.provider.get_recommendation(symbol)

    async def persist(
        self, trend: RecommendationTrend, refreshed_at: datetime
    ) -> RecommendationSnapshot:
        """Write fetched counts to the cache without committing."""
        snapshot = await self.get_snapshot(trend.symbol)
        if snapshot is None:
            snapshot = RecommendationSnapshot(symbol=trend.symbol)
            self.db.add(snapshot)

        snapshot.period = trend.period
        snapshot.strong_buy = trend.strong_buy
        snapshot.buy = trend.buy
        snapshot.hold = trend.hold
        snapshot.sell = trend.sell
        snapshot.strong_sell = trend.strong_sell
        snapshot.last_refreshed = refreshed_at
        await self.db.flush()
        return snapshot

    async def _store(
        self, symbol: str, trend: RecommendationTrend, refreshed_at: datetime
    ) -> RecommendationSnapshot:
        snapshot = await self.persist(trend, refreshed_at)
        await self.db.commit()
        return snapshot

    async def get_cached_recommendation(self, symbol: str) -> CachedValue[RecommendationSnapshot]:
        """
        Serve the cached recommendation for ``symbol``, refreshing it when stale.

        Raises:
            InvalidSymbol: Malformed ticker
            UpstreamUnavailable: Refresh failed and nothing was cached
        """
        try:
            symbol = validate_symbol(symbol)
        except SymbolValidationError as e:
            raise InvalidSymbol(str(e))

        return await get_or_refresh(
            symbol,
            self.ttl(),
            load=self.get_snapshot,
            fetch=self.fetch,
            store=self._store,
            last_refreshed=lambda s: s.last_refreshed,
            cache=self.CACHE_NAME,
        )

    async def get_cached_recommendations(self, symbols: Iterable[str]) -> List[RecommendationLookup]:
        """
        Look up every symbol in turn.

        A symbol whose refresh fails with nothing cached is reported with an
        error instead of failing the whole batch.
        """
        lookups = []
        for symbol in symbols:
            try:
                cached = await self.get_cached_recommendation(symbol)
                lookups.append(RecommendationLookup(symbol=cached.value.symbol, cached=cached))
            except (UpstreamUnavailable, InvalidSymbol) as e:
                logger.warning(f"No recommendation available for {symbol}: {e}")
                lookups.append(RecommendationLookup(symbol=symbol, error=str(e)))
        return lookups
