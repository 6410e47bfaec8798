"""Market data cache schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel

from finsight.models.market_list_entry import MarketListType


class SymbolRequest(BaseModel):
    symbol: str


class PriceResponse(BaseModel):
    """Cached quote for a symbol."""

    symbol: str
    name: Optional[str] = None
    price: Optional[Decimal] = None
    change_percent: Optional[Decimal] = None
    last_refreshed: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RecommendationResponse(BaseModel):
    """Cached analyst counts plus the weighted signal derived from them."""

    symbol: str
    period: Optional[str] = None
    strong_buy: int
    buy: int
    hold: int
    sell: int
    strong_sell: int
    total_analysts: int
    action: str
    score: Decimal
    confidence: Decimal
    last_refreshed: Optional[datetime] = None
    stale: bool = False  # True when a failed refresh fell back to this value


class RecommendationItem(BaseModel):
    """One watchlist entry; ``error`` is set when nothing could be served."""

    symbol: str
    recommendation: Optional[RecommendationResponse] = None
    error: Optional[str] = None


class MarketListEntryResponse(BaseModel):
    rank: int
    symbol: str
    name: Optional[str] = None
    price: Optional[Decimal] = None
    change: Optional[Decimal] = None
    change_percent: Optional[Decimal] = None
    volume: Optional[int] = None
    market_cap: Optional[Decimal] = None
    fifty_two_week_range: Optional[str] = None

    model_config = {"from_attributes": True}


class MarketListResponse(BaseModel):
    list_type: MarketListType
    entries: List[MarketListEntryResponse]
    last_refreshed: Optional[datetime] = None
    stale: bool = False


class TrackResponse(BaseModel):
    """Result of adding a symbol to the featured list or the watchlist."""

    symbol: str
    list_name: str
    price: Optional[PriceResponse] = None
    recommendation: Optional[RecommendationResponse] = None
    errors: Dict[str, str] = {}


class ProviderInfo(BaseModel):
    name: str
    rate_limits: dict
