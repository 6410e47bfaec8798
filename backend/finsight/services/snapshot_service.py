"""
Portfolio history service.

Owns the daily ``history_points`` series: one row per calendar date holding
the four asset-class subtotals, exposed as ascending calendar windows ending
today.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.ext.asyncio import AsyncSession

from finsight.config import settings
from finsight.crud.history import HistoryCRUD
from finsight.models.history_point import HistoryPoint
from finsight.models.holding import AssetClass
from finsight.utils.datetime_utils import utc_today

logger = logging.getLogger(__name__)

# How far back each range reaches from today; None returns every retained row
HISTORY_RANGES = {
    "7d": relativedelta(days=7),
    "1m": relativedelta(months=1),
    "6m": relativedelta(months=6),
    "all": None,
}


@dataclass
class HistoryValue:
    date: date
    value: Decimal


def parse_range(history_range: str) -> Optional[relativedelta]:
    """
    Map a range label to how far back it reaches.

    Raises:
        ValueError: Unknown range label
    """
    key = (history_range or "").strip().lower()
    if key not in HISTORY_RANGES:
        raise ValueError(
            f"Invalid range '{history_range}'. Supported: {', '.join(HISTORY_RANGES)}"
        )
    return HISTORY_RANGES[key]


def range_start(history_range: str, today: date) -> Optional[date]:
    """First date included in ``history_range``; None for an unbounded range."""
    span = parse_range(history_range)
    if span is None:
        return None
    return today - span


class SnapshotService:
    """Service for the daily portfolio history."""

    def __init__(self, db: AsyncSession, today: Callable[[], date] = utc_today):
        self.db = db
        self._today = today

    async def record(
        self,
        snapshot_date: date,
        cash_value: Decimal,
        stock_value: Decimal,
        bond_value: Decimal,
        other_value: Decimal,
    ) -> HistoryPoint:
        """Write the row for ``snapshot_date``; earlier days are write-once. The caller commits."""
        point = await HistoryCRUD.upsert(
            self.db,
            snapshot_date,
            cash_value=cash_value,
            stock_value=stock_value,
            bond_value=bond_value,
            other_value=other_value,
            today=self._today(),
        )
        logger.info(f"Recorded history point for {snapshot_date}: ${point.total_value}")
        return point

    async def get_points(self, history_range: str = "all") -> List[HistoryPoint]:
        """History rows for a range, ascending by date with one row per date."""
        return await HistoryCRUD.list_since(self.db, range_start(history_range, self._today()))

    async def get_history(self, history_range: str = "all") -> List[HistoryValue]:
        """Total portfolio value per date for a range."""
        points = await self.get_points(history_range)
        return [HistoryValue(date=p.date, value=p.total_value) for p in points]

    async def get_class_history(
        self, asset_class: AssetClass, history_range: str = "all"
    ) -> List[HistoryValue]:
        """Value of a single asset class per date for a range."""
        column = f"{AssetClass(asset_class).value}_value"
        points = await self.get_points(history_range)
        return [HistoryValue(date=p.date, value=Decimal(getattr(p, column))) for p in points]

    async def get_baseline(self) -> Decimal:
        """
        Baseline for gain/loss.

        The total of the earliest retained history row, or the configured
        fallback when no history exists yet.
        """
        earliest = await HistoryCRUD.get_earliest(self.db)
        if earliest is None:
            return Decimal(settings.GAIN_LOSS_BASELINE_FALLBACK)
        return earliest.total_value
