"""
Startup tasks: backfill today's history row and optionally warm the caches.

The preload walks the recommendation watchlist and the three screener lists
one call at a time to stay inside upstream rate limits. Nothing here may
abort application startup.
"""

from sqlalchemy.exc import SQLAlchemyError

from finsight.config import settings
from finsight.core.database import AsyncSessionLocal
from finsight.core.exceptions import PortfolioError
from finsight.core.logging_config import get_logger
from finsight.models.market_list_entry import MarketListType
from finsight.models.tracked_symbol import TrackedList
from finsight.services.market_data import MarketDataProvider, get_market_data_provider
from finsight.services.market_list_service import MarketListCacheService
from finsight.services.recommendation_service import RecommendationCacheService
from finsight.services.tracked_symbols_service import TrackedSymbolsService
from finsight.services.valuation_service import ValuationService

logger = get_logger(__name__)


async def record_startup_snapshot(session_factory=AsyncSessionLocal) -> bool:
    """Write today's history row once at startup."""
    async with session_factory() as db:
        try:
            point = await ValuationService(db).record_daily_snapshot()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("startup_snapshot_failed", error=str(e))
            return False
        logger.info("startup_snapshot_recorded", date=str(point.date))
        return True


async def preload_caches(
    session_factory=AsyncSessionLocal, provider: MarketDataProvider = None
) -> dict:
    """
    Warm the recommendation and market list caches sequentially.

    Returns counts of loaded and failed entries.
    """
    summary = {"recommendations": 0, "market_lists": 0, "failed": 0}

    if provider is None:
        try:
            provider = get_market_data_provider()
        except ValueError as e:
            logger.warning("cache_preload_skipped", reason=str(e))
            return summary

    async with session_factory() as db:
        symbols = await TrackedSymbolsService(db, provider).list_symbols(
            TrackedList.RECOMMENDATIONS
        )
        recommendations = RecommendationCacheService(db, provider)
        for symbol in symbols:
            try:
                await recommendations.get_cached_recommendation(symbol)
                summary["recommendations"] += 1
            except PortfolioError as e:
                summary["failed"] += 1
                logger.warning(
                    "cache_preload_failed", cache="recommendation", key=symbol, error=str(e)
                )

        market_lists = MarketListCacheService(db, provider)
        for list_type in MarketListType:
            try:
                await market_lists.get_cached_market_list(list_type)
                summary["market_lists"] += 1
            except PortfolioError as e:
                summary["failed"] += 1
                logger.warning(
                    "cache_preload_failed", cache="market_list", key=list_type.value, error=str(e)
                )

    logger.info("cache_preload_complete", **summary)
    return summary


async def run_startup_tasks() -> None:
    await record_startup_snapshot()
    if settings.CACHE_PRELOAD_ENABLED:
        try:
            await preload_caches()
        except SQLAlchemyError as e:
            logger.error("cache_preload_aborted", error=str(e))
