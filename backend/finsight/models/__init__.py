"""SQLAlchemy models package."""

from finsight.models.holding import AssetClass, BondDetail, Holding
from finsight.models.price_snapshot import PriceSnapshot
from finsight.models.recommendation_snapshot import RecommendationSnapshot
from finsight.models.market_list_entry import MarketListEntry, MarketListType
from finsight.models.history_point import HistoryPoint
from finsight.models.portfolio_state import PORTFOLIO_STATE_ID, PortfolioState
from finsight.models.tracked_symbol import TrackedList, TrackedSymbol

__all__ = [
    "AssetClass",
    "BondDetail",
    "Holding",
    "PriceSnapshot",
    "RecommendationSnapshot",
    "MarketListEntry",
    "MarketListType",
    "HistoryPoint",
    "PORTFOLIO_STATE_ID",
    "PortfolioState",
    "TrackedList",
    "TrackedSymbol",
]
