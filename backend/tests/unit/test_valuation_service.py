"""Tests for the valuation engine and holding mutations."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from finsight.core.exceptions import (
    DataInconsistency,
    InsufficientBalance,
    InvalidAmount,
    InvalidAssetClass,
    InvalidDirection,
    InvalidSymbol,
    MissingSymbol,
)
from finsight.crud.holding import HoldingCRUD
from finsight.models.history_point import HistoryPoint
from finsight.models.holding import AssetClass, BondDetail
from finsight.models.portfolio_state import PORTFOLIO_STATE_ID, PortfolioState
from finsight.services.valuation_service import (
    ClassBreakdown,
    Direction,
    ValuationService,
    normalize_symbol,
    parse_amount,
    parse_asset_class,
    parse_direction,
    round_money,
)

TODAY = date(2026, 3, 2)


@pytest.fixture
def service(db_session, mock_provider):
    return ValuationService(db_session, mock_provider, today=lambda: TODAY)


async def _history_count(db) -> int:
    return await db.scalar(select(func.count()).select_from(HistoryPoint))


@pytest.mark.unit
class TestInputParsing:
    """Test suite for amount, symbol, class and direction validation."""

    @pytest.mark.parametrize("value", ["abc", "", None, True, "NaN", "Infinity", "-Infinity"])
    def test_non_numeric_amounts_rejected(self, value):
        """Should reject anything that is not a finite number."""
        with pytest.raises(InvalidAmount):
            parse_amount(value, AssetClass.CASH)

    @pytest.mark.parametrize("value", [0, "0", "-50", Decimal("-0.01")])
    def test_non_positive_amounts_rejected(self, value):
        """Should reject zero and negative amounts."""
        with pytest.raises(InvalidAmount):
            parse_amount(value, AssetClass.CASH)

    def test_currency_classes_allow_two_places(self):
        """Should accept cents and reject sub-cent amounts for currency classes."""
        assert parse_amount("10.25", AssetClass.BOND) == Decimal("10.25")
        with pytest.raises(InvalidAmount, match="2 decimal places"):
            parse_amount("10.001", AssetClass.OTHER)

    def test_stock_allows_six_places(self):
        """Should accept fractional shares up to six places."""
        assert parse_amount("0.123456", AssetClass.STOCK) == Decimal("0.123456")
        with pytest.raises(InvalidAmount, match="6 decimal places"):
            parse_amount("0.1234567", AssetClass.STOCK)

    def test_trailing_zeros_are_not_extra_precision(self):
        """Should accept 5.000 for cash since it equals 5.00."""
        assert parse_amount("5.000", AssetClass.CASH) == Decimal("5")

    def test_huge_amount_rejected(self):
        """Should reject amounts the quantity column cannot hold."""
        with pytest.raises(InvalidAmount, match="too large"):
            parse_amount("1e15", AssetClass.CASH)

    def test_numeric_types_accepted(self):
        """Should accept ints, floats and Decimals."""
        assert parse_amount(5, AssetClass.STOCK) == Decimal("5")
        assert parse_amount(2.5, AssetClass.STOCK) == Decimal("2.5")
        assert parse_amount(Decimal("7.10"), AssetClass.CASH) == Decimal("7.10")

    def test_stock_requires_symbol(self):
        """Should raise MissingSymbol for a stock without a symbol."""
        with pytest.raises(MissingSymbol):
            normalize_symbol(AssetClass.STOCK, None)
        with pytest.raises(MissingSymbol):
            normalize_symbol(AssetClass.STOCK, "   ")

    def test_symbol_is_normalised(self):
        """Should upper-case and strip stock symbols."""
        assert normalize_symbol(AssetClass.STOCK, " aapl ") == "AAPL"

    def test_malformed_symbol_rejected(self):
        """Should raise InvalidSymbol for a malformed ticker."""
        with pytest.raises(InvalidSymbol):
            normalize_symbol(AssetClass.STOCK, "AA$PL")

    def test_cash_and_other_ignore_symbol(self):
        """Should key cash and other by a null symbol."""
        assert normalize_symbol(AssetClass.CASH, "USD") is None
        assert normalize_symbol(AssetClass.OTHER, "GOLD") is None

    def test_bond_symbol_is_optional(self):
        """Should allow bonds with or without a symbol."""
        assert normalize_symbol(AssetClass.BOND, None) is None
        assert normalize_symbol(AssetClass.BOND, "ust10y") == "UST10Y"

    def test_asset_class_and_direction(self):
        """Should parse case-insensitively and reject unknown values."""
        assert parse_asset_class("STOCK") is AssetClass.STOCK
        assert parse_direction("Reduce") is Direction.REDUCE
        with pytest.raises(InvalidAssetClass):
            parse_asset_class("crypto")
        with pytest.raises(InvalidDirection):
            parse_direction("withdraw")


@pytest.mark.unit
class TestGainLoss:
    """Test suite for the gain/loss calculation."""

    def test_gain(self):
        """Should compute absolute and percentage change."""
        assert ValuationService.gain_loss(Decimal("12310"), Decimal("13541")) == (
            Decimal("1231.00"),
            Decimal("10.00"),
        )

    def test_loss_rounds_half_up(self):
        """Should round both figures half-up to cents."""
        gain, percent = ValuationService.gain_loss(Decimal("3"), Decimal("2"))
        assert gain == Decimal("-1.00")
        assert percent == Decimal("-33.33")

    def test_zero_baseline(self):
        """Should report a 0 percent change instead of dividing by zero."""
        assert ValuationService.gain_loss(Decimal("0"), Decimal("100")) == (
            Decimal("100.00"),
            Decimal("0.00"),
        )

    def test_round_money(self):
        assert round_money(Decimal("0.005")) == Decimal("0.01")
        assert round_money(Decimal("-0.005")) == Decimal("-0.01")


@pytest.mark.unit
@pytest.mark.asyncio
class TestValuation:
    """Test suite for reading the portfolio value."""

    async def test_stock_contribution(self, db, service, add_price):
        """Should value 10 AAPL at $150 as $1500.00."""
        await add_price("AAPL", "150")
        await HoldingCRUD.upsert_quantity(db, AssetClass.STOCK, "AAPL", Decimal("10"))
        await db.commit()

        breakdown = await service.compute_class_breakdown()

        assert breakdown.stock == Decimal("1500")
        assert await service.compute_total_value() == Decimal("1500.00")

    async def test_missing_price_counts_as_zero(self, db, service, add_price):
        """Should degrade a holding without a cached price to zero, not fail."""
        await add_price("AAPL", "100")
        await HoldingCRUD.upsert_quantity(db, AssetClass.STOCK, "AAPL", Decimal("2"))
        await HoldingCRUD.upsert_quantity(db, AssetClass.STOCK, "NOPRICE", Decimal("50"))
        await HoldingCRUD.upsert_quantity(db, AssetClass.CASH, None, Decimal("25.50"))
        await db.commit()

        breakdown = await service.compute_class_breakdown()

        assert breakdown.stock == Decimal("200")
        assert breakdown.cash == Decimal("25.50")
        assert breakdown.total == Decimal("225.50")

    async def test_total_equals_sum_of_breakdown(self, db, service, add_price):
        """Should keep the total within a cent of the class sum."""
        await add_price("AAPL", "187.3333")
        await add_price("NVDA", "901.1111")
        await HoldingCRUD.upsert_quantity(db, AssetClass.STOCK, "AAPL", Decimal("3.333333"))
        await HoldingCRUD.upsert_quantity(db, AssetClass.STOCK, "NVDA", Decimal("0.777777"))
        await HoldingCRUD.upsert_quantity(db, AssetClass.CASH, None, Decimal("1000.01"))
        await HoldingCRUD.upsert_quantity(db, AssetClass.BOND, None, Decimal("2000.50"))
        await HoldingCRUD.upsert_quantity(db, AssetClass.OTHER, None, Decimal("999.99"))
        await db.commit()

        total = await service.compute_total_value()
        rounded = await service.get_allocation()
        class_sum = rounded.cash + rounded.stock + rounded.bond + rounded.other

        assert abs(total - class_sum) <= Decimal("0.01")

    async def test_get_total_value_uses_fallback_baseline(self, db, service):
        """Should compare against the configured fallback when no history exists."""
        await HoldingCRUD.upsert_quantity(db, AssetClass.CASH, None, Decimal("13541"))
        await db.commit()

        value = await service.get_total_value()

        assert value.total == Decimal("13541.00")
        assert value.gain_loss == Decimal("1231.00")
        assert value.gain_loss_percent == Decimal("10.00")

    async def test_get_total_value_updates_portfolio_state(self, db, service):
        """Should store the latest totals in the singleton state row."""
        await HoldingCRUD.upsert_quantity(db, AssetClass.CASH, None, Decimal("500"))
        await db.commit()
        await service.record_daily_snapshot(date(2026, 1, 1))

        await service.get_total_value()
        await HoldingCRUD.upsert_quantity(db, AssetClass.CASH, None, Decimal("750"))
        await db.commit()
        await service.get_total_value()

        states = (await db.execute(select(PortfolioState))).scalars().all()
        assert len(states) == 1
        assert states[0].id == PORTFOLIO_STATE_ID
        assert Decimal(states[0].total_value) == Decimal("750.00")
        assert Decimal(states[0].gain_loss) == Decimal("250.00")
        assert Decimal(states[0].gain_loss_percent) == Decimal("50.00")

    async def test_get_total_value_can_refresh_prices(self, db, service, mock_provider, monkeypatch):
        """Should fetch missing prices first when valuation refresh is enabled."""
        monkeypatch.setattr("finsight.config.settings.VALUATION_REFRESH_PRICES", True)
        await HoldingCRUD.upsert_quantity(db, AssetClass.STOCK, "AAPL", Decimal("2"))
        await db.commit()

        value = await service.get_total_value()

        mock_provider.get_quote.assert_awaited_once_with("AAPL")
        assert value.total == Decimal("300.50")

    async def test_get_total_value_does_not_call_provider_by_default(
        self, db, service, mock_provider
    ):
        """Should value from the cache only unless refresh is enabled."""
        await HoldingCRUD.upsert_quantity(db, AssetClass.STOCK, "AAPL", Decimal("2"))
        await db.commit()

        value = await service.get_total_value()

        mock_provider.get_quote.assert_not_awaited()
        assert value.total == Decimal("0.00")


@pytest.mark.unit
@pytest.mark.asyncio
class TestDailySnapshot:
    """Test suite for recording the daily history row."""

    async def test_snapshot_is_idempotent(self, db, service, add_price):
        """Should leave one identical row after recording twice."""
        await add_price("AAPL", "150")
        await HoldingCRUD.upsert_quantity(db, AssetClass.STOCK, "AAPL", Decimal("10"))
        await HoldingCRUD.upsert_quantity(db, AssetClass.CASH, None, Decimal("5000"))
        await db.commit()

        first = await service.record_daily_snapshot()
        first_values = (first.cash_value, first.stock_value, first.bond_value, first.other_value)
        second = await service.record_daily_snapshot()

        assert await _history_count(db) == 1
        assert second.date == TODAY
        assert (
            second.cash_value,
            second.stock_value,
            second.bond_value,
            second.other_value,
        ) == first_values
        assert second.total_value == Decimal("6500.00")

    async def test_snapshot_reflects_new_holdings(self, db, service):
        """Should overwrite today's row when holdings change."""
        await HoldingCRUD.upsert_quantity(db, AssetClass.OTHER, None, Decimal("100"))
        await db.commit()
        await service.record_daily_snapshot()

        await HoldingCRUD.upsert_quantity(db, AssetClass.OTHER, None, Decimal("250"))
        await db.commit()
        point = await service.record_daily_snapshot()

        assert await _history_count(db) == 1
        assert Decimal(point.other_value) == Decimal("250.00")

    async def test_earlier_snapshot_is_not_rewritten(self, db, service):
        """Should keep an earlier day's row as first recorded."""
        past = date(2026, 2, 27)
        await HoldingCRUD.upsert_quantity(db, AssetClass.CASH, None, Decimal("100"))
        await db.commit()
        await service.record_daily_snapshot(past)

        await HoldingCRUD.upsert_quantity(db, AssetClass.CASH, None, Decimal("1000"))
        await db.commit()
        point = await service.record_daily_snapshot(past)

        assert await _history_count(db) == 1
        assert point.total_value == Decimal("100.00")


@pytest.mark.unit
@pytest.mark.asyncio
class TestMutateHolding:
    """Test suite for add/reduce mutations."""

    async def test_add_creates_holding(self, db, service, add_price):
        """Should create the holding on first add and return the new total."""
        await add_price("AAPL", "150")

        result = await service.mutate_holding("stock", "aapl", "10", "add")

        assert result.success is True
        assert result.new_total == Decimal("1500.00")
        holding = await HoldingCRUD.get(db, AssetClass.STOCK, "AAPL")
        assert Decimal(holding.quantity) == Decimal("10")

    async def test_reduce_then_insufficient_balance(self, db, service, add_price):
        """Should reduce 10 to 5, then reject a reduce of 10 leaving 5."""
        await add_price("AAPL", "150")
        await service.mutate_holding("stock", "AAPL", 10, "add")

        first = await service.mutate_holding("stock", "AAPL", 5, "reduce")
        assert first.success is True
        assert first.new_total == Decimal("750.00")

        second = await service.mutate_holding("stock", "AAPL", 10, "reduce")
        assert second.success is False
        assert second.error_code == InsufficientBalance.code

        holding = await HoldingCRUD.get(db, AssetClass.STOCK, "AAPL")
        assert Decimal(holding.quantity) == Decimal("5")

    async def test_negative_add_rejected_before_any_write(self, db, service):
        """Should reject a negative cash add without touching any table."""
        result = await service.mutate_holding("cash", None, -50, "add")

        assert result.success is False
        assert result.error_code == InvalidAmount.code
        assert await HoldingCRUD.list_all(db) == []
        assert await _history_count(db) == 0

    async def test_stock_without_symbol_rejected(self, db, service):
        """Should report missing_symbol for a stock change without a symbol."""
        result = await service.mutate_holding("stock", None, 1, "add")

        assert result.success is False
        assert result.error_code == MissingSymbol.code

    async def test_unknown_class_and_direction_rejected(self, service):
        """Should report structured failures for bad class or direction."""
        bad_class = await service.mutate_holding("crypto", None, 1, "add")
        bad_direction = await service.mutate_holding("cash", None, 1, "sideways")

        assert bad_class.error_code == InvalidAssetClass.code
        assert bad_direction.error_code == InvalidDirection.code

    async def test_reduce_without_holding_rejected(self, service):
        """Should treat reducing a missing holding as insufficient balance."""
        result = await service.mutate_holding("cash", None, "1.00", "reduce")

        assert result.success is False
        assert result.error_code == InsufficientBalance.code

    async def test_reduce_to_zero_deletes_holding(self, db, service):
        """Should delete a holding whose quantity reaches zero."""
        await service.mutate_holding("other", None, "100.00", "add")

        result = await service.mutate_holding("other", None, "100.00", "reduce")

        assert result.success is True
        assert result.new_total == Decimal("0.00")
        assert await HoldingCRUD.get(db, AssetClass.OTHER, None) is None

    async def test_sequence_sums_adds_minus_reduces(self, db, service):
        """Should end with the sum of accepted adds minus accepted reduces."""
        operations = [
            ("add", "100.00"),
            ("add", "50.25"),
            ("reduce", "30.10"),
            ("reduce", "500.00"),  # rejected
            ("add", "0.85"),
            ("reduce", "121.00"),
            ("reduce", "0.01"),  # rejected, balance is 0 after deletion
        ]
        expected = Decimal("0")
        for direction, amount in operations:
            result = await service.mutate_holding("cash", None, amount, direction)
            if direction == "add":
                expected += Decimal(amount)
            elif expected >= Decimal(amount):
                expected -= Decimal(amount)
            else:
                assert result.success is False
                assert result.error_code == InsufficientBalance.code
                continue
            assert result.success is True

            holding = await HoldingCRUD.get(db, AssetClass.CASH, None)
            current = Decimal(holding.quantity) if holding else Decimal("0")
            assert current == expected
            assert current >= 0

    async def test_fractional_shares_reduce_to_zero(self, db, service):
        """Should not leave float residue after reducing fractional shares."""
        await service.mutate_holding("stock", "VTI", "0.1", "add")
        await service.mutate_holding("stock", "VTI", "0.2", "add")

        result = await service.mutate_holding("stock", "VTI", "0.3", "reduce")

        assert result.success is True
        assert await HoldingCRUD.get(db, AssetClass.STOCK, "VTI") is None

    async def test_mutation_records_history_and_state(self, db, service):
        """Should write today's history row and the state row with the mutation."""
        await service.mutate_holding("cash", None, "1234.56", "add")

        point = (await db.execute(select(HistoryPoint))).scalar_one()
        state = await db.get(PortfolioState, PORTFOLIO_STATE_ID)

        assert point.date == TODAY
        assert Decimal(point.cash_value) == Decimal("1234.56")
        assert Decimal(state.total_value) == Decimal("1234.56")

    async def test_bond_mutation_keeps_companion_in_step(self, db, service):
        """Should create and update the bond companion with the holding."""
        await service.mutate_holding("bond", None, "2000", "add")
        await service.mutate_holding("bond", None, "500.50", "reduce")

        holding = await HoldingCRUD.get(db, AssetClass.BOND, None)
        detail = await HoldingCRUD.get_bond_detail(db, holding.id)
        assert Decimal(holding.quantity) == Decimal("1499.50")
        assert Decimal(detail.face_amount) == Decimal("1499.50")

    async def test_bond_reduced_to_zero_removes_companion(self, db, service):
        """Should delete the companion together with its holding."""
        await service.mutate_holding("bond", "UST10Y", "1000", "add")

        await service.mutate_holding("bond", "UST10Y", "1000", "reduce")

        details = (await db.execute(select(BondDetail))).scalars().all()
        assert details == []

    async def test_divergent_bond_companion_raises(self, db, service):
        """Should abort with DataInconsistency and leave the holding untouched."""
        await service.mutate_holding("bond", None, "2000", "add")
        holding = await HoldingCRUD.get(db, AssetClass.BOND, None)
        detail = await HoldingCRUD.get_bond_detail(db, holding.id)
        detail.face_amount = Decimal("1999")
        await db.commit()

        with pytest.raises(DataInconsistency):
            await service.mutate_holding("bond", None, "100", "add")

        holding = await HoldingCRUD.get(db, AssetClass.BOND, None)
        assert Decimal(holding.quantity) == Decimal("2000")

    async def test_apply_holding_change_raises_validation_errors(self, service):
        """Should raise, not return, validation failures below mutate_holding."""
        with pytest.raises(InvalidAmount):
            await service.apply_holding_change("cash", None, "-1", "add")


@pytest.mark.unit
class TestClassBreakdown:
    def test_total_rounds_once(self):
        """Should round the summed value, not each class."""
        breakdown = ClassBreakdown(
            cash=Decimal("0.004"),
            stock=Decimal("0.004"),
            bond=Decimal("0"),
            other=Decimal("0"),
        )
        assert breakdown.total == Decimal("0.01")
        assert breakdown.rounded().cash == Decimal("0.00")
