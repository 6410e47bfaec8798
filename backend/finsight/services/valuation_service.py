"""
Portfolio valuation engine.

Computes the current value of the holdings from the price cache, keeps the
daily history row for today in step with every mutation, and applies
add/reduce changes to holdings.

Valuation rules
───────────────
stock        quantity (shares) x cached price; a missing price counts as 0
cash/bond/   quantity is already a currency amount and is summed directly
other
Totals are rounded half-up to cents once, after summing, never per holding.

Mutation unit
─────────────
A holding change, its bond companion record, today's history row and the
portfolio state are written in one transaction and rolled back together.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Callable, Optional, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncSession

from finsight.config import settings
from finsight.core.exceptions import (
    DataInconsistency,
    HoldingValidationError,
    InsufficientBalance,
    InvalidAmount,
    InvalidAssetClass,
    InvalidDirection,
    InvalidSymbol,
    MissingSymbol,
)
from finsight.core.metrics import track_holding_mutation
from finsight.crud.holding import HoldingCRUD
from finsight.models.history_point import HistoryPoint
from finsight.models.holding import AssetClass, Holding
from finsight.models.portfolio_state import PORTFOLIO_STATE_ID, PortfolioState
from finsight.services.market_data import MarketDataProvider
from finsight.services.market_data.security import SymbolValidationError, validate_symbol
from finsight.services.price_cache_service import PriceCacheService
from finsight.services.snapshot_service import SnapshotService
from finsight.utils.datetime_utils import utc_today

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


class Direction(str, Enum):
    ADD = "add"
    REDUCE = "reduce"


@dataclass
class ClassBreakdown:
    """Unrounded value per asset class."""

    cash: Decimal = Decimal("0")
    stock: Decimal = Decimal("0")
    bond: Decimal = Decimal("0")
    other: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return round_money(self.cash + self.stock + self.bond + self.other)

    def rounded(self) -> "ClassBreakdown":
        return ClassBreakdown(
            cash=round_money(self.cash),
            stock=round_money(self.stock),
            bond=round_money(self.bond),
            other=round_money(self.other),
        )

    def add(self, asset_class: AssetClass, value: Decimal) -> None:
        field = asset_class.value
        setattr(self, field, getattr(self, field) + value)


@dataclass
class PortfolioValue:
    total: Decimal
    gain_loss: Decimal
    gain_loss_percent: Decimal


@dataclass
class MutationResult:
    success: bool
    new_total: Optional[Decimal] = None
    error_code: Optional[str] = None
    message: Optional[str] = None


# ── input validation ──────────────────────────────────────────────────────────

def parse_asset_class(value: Union[str, AssetClass]) -> AssetClass:
    try:
        return AssetClass(value.lower() if isinstance(value, str) else value)
    except ValueError:
        raise InvalidAssetClass(
            f"Unknown asset class '{value}'. Supported: "
            f"{', '.join(c.value for c in AssetClass)}"
        )


def parse_direction(value: Union[str, Direction]) -> Direction:
    try:
        return Direction(value.lower() if isinstance(value, str) else value)
    except ValueError:
        raise InvalidDirection(f"Direction must be 'add' or 'reduce', got '{value}'")


def parse_amount(value, asset_class: AssetClass) -> Decimal:
    """
    Convert a change amount to Decimal and check it for the asset class.

    Raises:
        InvalidAmount: Non-numeric, non-finite, not positive, or carrying more
            decimal places than the class stores
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmount("Amount must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmount(f"Amount must be a number, got '{value}'")

    if not amount.is_finite():
        raise InvalidAmount("Amount must be a finite number")
    if amount <= 0:
        raise InvalidAmount(f"Amount must be greater than zero, got {amount}")
    if amount.adjusted() >= 12:
        # holdings.quantity is Numeric(18, 6)
        raise InvalidAmount(f"Amount is too large: {amount}")

    places = asset_class.quantity_places
    if amount != amount.quantize(Decimal(1).scaleb(-places)):
        raise InvalidAmount(
            f"{asset_class.value} amounts allow at most {places} decimal places, got {amount}"
        )
    return amount


def normalize_symbol(asset_class: AssetClass, symbol: Optional[str]) -> Optional[str]:
    """
    Resolve the symbol a holding is keyed by.

    Stocks require one, bonds may carry one, cash and other are always keyed
    by a null symbol.
    """
    if not asset_class.accepts_symbol:
        return None

    if symbol is None or not str(symbol).strip():
        if asset_class.requires_symbol:
            raise MissingSymbol(f"A symbol is required for {asset_class.value} holdings")
        return None

    try:
        return validate_symbol(str(symbol))
    except SymbolValidationError as e:
        raise InvalidSymbol(str(e))


# ── engine ────────────────────────────────────────────────────────────────────

class ValuationService:
    """Valuation engine and the portfolio read/mutate interface."""

    def __init__(
        self,
        db: AsyncSession,
        provider: Optional[MarketDataProvider] = None,
        today: Callable[[], date] = utc_today,
    ):
        self.db = db
        self.prices = PriceCacheService(db, provider)
        self.snapshots = SnapshotService(db, today)
        self._today = today

    async def compute_class_breakdown(self) -> ClassBreakdown:
        """
        Value of each asset class from current holdings and cached prices.

        Read only. A stock without a cached price contributes 0.
        """
        holdings = await HoldingCRUD.list_all(self.db)
        prices = await self.prices.prices_for(
            h.symbol for h in holdings if h.asset_class.is_priced and h.symbol
        )

        breakdown = ClassBreakdown()
        for holding in holdings:
            quantity = Decimal(holding.quantity)
            if holding.asset_class.is_priced:
                price = prices.get(holding.symbol)
                if price is None:
                    logger.warning(f"No cached price for {holding.symbol}; valuing at 0")
                    continue
                breakdown.add(holding.asset_class, quantity * price)
            else:
                breakdown.add(holding.asset_class, quantity)

        return breakdown

    async def compute_total_value(self) -> Decimal:
        breakdown = await self.compute_class_breakdown()
        return breakdown.total

    async def record_daily_snapshot(
        self, snapshot_date: Optional[date] = None, commit: bool = True
    ) -> HistoryPoint:
        """
        Write the history row for ``snapshot_date`` (default today).

        Idempotent: repeating it with unchanged holdings rewrites the same values.
        A row for an earlier date is only written when missing.
        """
        breakdown = (await self.compute_class_breakdown()).rounded()
        point = await self.snapshots.record(
            snapshot_date or self._today(),
            cash_value=breakdown.cash,
            stock_value=breakdown.stock,
            bond_value=breakdown.bond,
            other_value=breakdown.other,
        )
        if commit:
            await self.db.commit()
        return point

    @staticmethod
    def gain_loss(baseline: Decimal, current: Decimal) -> Tuple[Decimal, Decimal]:
        """
        Absolute and percentage change from ``baseline`` to ``current``.

        A zero baseline yields a 0 percent change instead of dividing by zero.
        """
        baseline = Decimal(baseline)
        delta = Decimal(current) - baseline
        if baseline == 0:
            return round_money(delta), Decimal("0.00")
        return round_money(delta), round_money(delta / baseline * 100)

    async def _store_portfolio_state(self, value: PortfolioValue) -> PortfolioState:
        state = await self.db.get(PortfolioState, PORTFOLIO_STATE_ID, populate_existing=True)
        if state is None:
            state = PortfolioState(id=PORTFOLIO_STATE_ID)
            self.db.add(state)
        state.total_value = value.total
        state.gain_loss = value.gain_loss
        state.gain_loss_percent = value.gain_loss_percent
        await self.db.flush()
        return state

    async def _portfolio_value(self, total: Decimal) -> PortfolioValue:
        baseline = await self.snapshots.get_baseline()
        gain_loss, percent = self.gain_loss(baseline, total)
        return PortfolioValue(total=total, gain_loss=gain_loss, gain_loss_percent=percent)

    async def get_total_value(self) -> PortfolioValue:
        """Current total with gain/loss against the baseline; updates portfolio state."""
        if settings.VALUATION_REFRESH_PRICES:
            holdings = await HoldingCRUD.list_all(self.db)
            await self.prices.refresh_stale(
                h.symbol for h in holdings if h.asset_class.is_priced and h.symbol
            )

        value = await self._portfolio_value(await self.compute_total_value())
        await self._store_portfolio_state(value)
        await self.db.commit()
        return value

    async def get_allocation(self) -> ClassBreakdown:
        """Value (not percentage) of each asset class, rounded to cents."""
        return (await self.compute_class_breakdown()).rounded()

    async def _check_bond_companion(self, holding: Holding) -> None:
        detail = await HoldingCRUD.get_bond_detail(self.db, holding.id)
        if detail is None:
            return
        if Decimal(detail.face_amount) != Decimal(holding.quantity):
            logger.error(
                "data_inconsistency",
                extra={
                    "holding_id": holding.id,
                    "symbol": holding.symbol,
                    "quantity": str(holding.quantity),
                    "face_amount": str(detail.face_amount),
                },
            )
            raise DataInconsistency(
                f"Bond holding {holding.id} has quantity {holding.quantity} "
                f"but its companion record has face amount {detail.face_amount}"
            )

    async def apply_holding_change(
        self,
        asset_class: Union[str, AssetClass],
        symbol: Optional[str],
        delta,
        direction: Union[str, Direction],
    ) -> Decimal:
        """
        Add to or reduce a holding and return the new portfolio total.

        Reduces never clamp: a reduce larger than the held quantity fails and
        leaves the holding untouched; a reduce to exactly zero deletes it.

        Raises:
            InvalidAmount, MissingSymbol, InvalidSymbol, InvalidAssetClass,
            InvalidDirection, InsufficientBalance: Rejected before any write
                is committed
            DataInconsistency: Bond companion disagrees with its holding
        """
        asset_class = parse_asset_class(asset_class)
        direction = parse_direction(direction)
        amount = parse_amount(delta, asset_class)
        symbol = normalize_symbol(asset_class, symbol)

        try:
            holding = await HoldingCRUD.get(self.db, asset_class, symbol, for_update=True)
            if asset_class is AssetClass.BOND and holding is not None:
                await self._check_bond_companion(holding)

            if direction is Direction.ADD:
                holding = await HoldingCRUD.increment(self.db, asset_class, symbol, amount)
            else:
                holding = await self._reduce(holding, asset_class, symbol, amount)

            if asset_class is AssetClass.BOND and holding is not None:
                await HoldingCRUD.set_bond_face_amount(self.db, holding.id, holding.quantity)

            await self.record_daily_snapshot(self._today(), commit=False)
            value = await self._portfolio_value(await self.compute_total_value())
            await self._store_portfolio_state(value)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "holding_changed",
            extra={
                "asset_class": asset_class.value,
                "symbol": symbol,
                "direction": direction.value,
                "amount": str(amount),
                "new_total": str(value.total),
            },
        )
        return value.total

    async def _reduce(
        self,
        holding: Optional[Holding],
        asset_class: AssetClass,
        symbol: Optional[str],
        amount: Decimal,
    ) -> Optional[Holding]:
        """Conditionally subtract ``amount``; returns None when the row was deleted."""
        label = f"{asset_class.value}:{symbol}" if symbol else asset_class.value
        if holding is None:
            raise InsufficientBalance(f"No {label} holding to reduce")

        remaining = await HoldingCRUD.decrement_if_sufficient(
            self.db, holding.id, amount, places=asset_class.quantity_places
        )
        if remaining is None:
            current = await HoldingCRUD.get_by_id(self.db, holding.id)
            raise InsufficientBalance(
                f"Cannot reduce {label} by {amount}: only {current.quantity} held"
            )

        if remaining <= 0:
            await HoldingCRUD.delete(self.db, holding.id)
            return None
        return await HoldingCRUD.get_by_id(self.db, holding.id)

    async def mutate_holding(
        self,
        asset_class: Union[str, AssetClass],
        symbol: Optional[str],
        amount,
        direction: Union[str, Direction],
    ) -> MutationResult:
        """
        Apply a holding change and report the outcome as a structured result.

        Validation failures come back as ``success=False`` with an error code.
        ``DataInconsistency`` is not caught.
        """
        direction_label = str(getattr(direction, "value", direction)).lower()
        if direction_label not in (Direction.ADD.value, Direction.REDUCE.value):
            direction_label = "invalid"
        try:
            new_total = await self.apply_holding_change(asset_class, symbol, amount, direction)
        except HoldingValidationError as e:
            track_holding_mutation(direction_label, e.code)
            logger.info(f"Holding change rejected ({e.code}): {e}")
            return MutationResult(success=False, error_code=e.code, message=str(e))
        except DataInconsistency:
            track_holding_mutation(direction_label, DataInconsistency.code)
            raise

        track_holding_mutation(direction_label, "success")
        return MutationResult(success=True, new_total=new_total)
