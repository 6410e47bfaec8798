"""
Market data API endpoints.

Everything here is served from the database caches; the configured provider
is only called when a cached row is missing or stale.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from finsight.core.database import get_db
from finsight.models.market_list_entry import MarketListType
from finsight.models.recommendation_snapshot import RecommendationSnapshot
from finsight.models.tracked_symbol import TrackedList
from finsight.schemas.market_data import (
    MarketListEntryResponse,
    MarketListResponse,
    PriceResponse,
    ProviderInfo,
    RecommendationItem,
    RecommendationResponse,
    SymbolRequest,
    TrackResponse,
)
from finsight.services.market_data import get_market_data_provider
from finsight.services.market_list_service import MarketListCacheService, list_last_refreshed
from finsight.services.recommendation_service import RecommendationCacheService, signal_for
from finsight.services.tracked_symbols_service import TrackedSymbolsService, TrackResult

logger = logging.getLogger(__name__)

router = APIRouter()


def _recommendation_response(
    snapshot: RecommendationSnapshot, stale: bool = False
) -> RecommendationResponse:
    signal = signal_for(snapshot)
    return RecommendationResponse(
        symbol=snapshot.symbol,
        period=snapshot.period,
        strong_buy=snapshot.strong_buy,
        buy=snapshot.buy,
        hold=snapshot.hold,
        sell=snapshot.sell,
        strong_sell=snapshot.strong_sell,
        total_analysts=signal.total_analysts,
        action=signal.action,
        score=signal.score,
        confidence=signal.confidence,
        last_refreshed=snapshot.last_refreshed,
        stale=stale,
    )


def _track_response(result: TrackResult) -> TrackResponse:
    return TrackResponse(
        symbol=result.symbol,
        list_name=result.list_name.value,
        price=PriceResponse.model_validate(result.price) if result.price else None,
        recommendation=(
            _recommendation_response(result.recommendation) if result.recommendation else None
        ),
        errors=result.errors,
    )


# ============================================================================
# Featured stocks
# ============================================================================


@router.get("/featured", response_model=List[PriceResponse])
async def list_featured(db: AsyncSession = Depends(get_db)):
    """Featured stocks with their last cached price."""
    rows = await TrackedSymbolsService(db).list_featured()
    return [
        PriceResponse.model_validate(snapshot) if snapshot else PriceResponse(symbol=symbol)
        for symbol, snapshot in rows
    ]


@router.post("/featured", response_model=TrackResponse)
async def add_featured(payload: SymbolRequest, db: AsyncSession = Depends(get_db)):
    """Fetch a fresh quote for a symbol and add it to the featured list."""
    result = await TrackedSymbolsService(db).add(TrackedList.FEATURED, payload.symbol)
    return _track_response(result)


@router.delete("/featured/{symbol}")
async def remove_featured(symbol: str, db: AsyncSession = Depends(get_db)):
    """Remove a symbol from the featured list. Its cached price is kept."""
    removed = await TrackedSymbolsService(db).remove(TrackedList.FEATURED, symbol)
    if not removed:
        raise HTTPException(status_code=404, detail=f"{symbol.upper()} is not featured")
    return {"success": True}


# ============================================================================
# Recommendations
# ============================================================================


@router.get("/recommendations", response_model=List[RecommendationItem])
async def list_recommendations(db: AsyncSession = Depends(get_db)):
    """Cached recommendation for every symbol on the watchlist."""
    symbols = await TrackedSymbolsService(db).list_symbols(TrackedList.RECOMMENDATIONS)
    lookups = await RecommendationCacheService(db).get_cached_recommendations(symbols)
    return [
        RecommendationItem(
            symbol=lookup.symbol,
            recommendation=(
                _recommendation_response(lookup.cached.value, lookup.cached.stale)
                if lookup.cached
                else None
            ),
            error=lookup.error,
        )
        for lookup in lookups
    ]


@router.post("/recommendations", response_model=TrackResponse)
async def add_recommendation_symbol(payload: SymbolRequest, db: AsyncSession = Depends(get_db)):
    """Add a symbol to the watchlist and fetch its recommendation."""
    result = await TrackedSymbolsService(db).add(TrackedList.RECOMMENDATIONS, payload.symbol)
    return _track_response(result)


@router.get("/recommendations/{symbol}", response_model=RecommendationResponse)
async def get_recommendation(symbol: str, db: AsyncSession = Depends(get_db)):
    cached = await RecommendationCacheService(db).get_cached_recommendation(symbol)
    return _recommendation_response(cached.value, cached.stale)


# ============================================================================
# Screener lists
# ============================================================================


@router.get("/lists/{list_type}", response_model=MarketListResponse)
async def get_market_list(list_type: MarketListType, db: AsyncSession = Depends(get_db)):
    """Top entries of the gainers, losers or most-active screener."""
    cached = await MarketListCacheService(db).get_cached_market_list(list_type)
    return MarketListResponse(
        list_type=list_type,
        entries=[MarketListEntryResponse.model_validate(e) for e in cached.value],
        last_refreshed=list_last_refreshed(cached.value),
        stale=cached.stale,
    )


@router.get("/provider", response_model=ProviderInfo)
async def get_provider_info():
    """Information about the configured market data provider."""
    provider = get_market_data_provider()
    return ProviderInfo(name=provider.get_provider_name(), rate_limits=provider.get_rate_limits())
