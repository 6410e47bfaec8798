"""Daily materialised portfolio valuation split by asset class."""

from decimal import Decimal

from sqlalchemy import Column, Date, DateTime, Integer, Numeric

from finsight.core.database import Base
from finsight.utils.datetime_utils import utc_now_lambda


class HistoryPoint(Base):
    """
    One row per calendar date.

    Only today's row is rewritten; earlier rows are left as recorded.
    """

    __tablename__ = "history_points"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, unique=True, index=True)

    cash_value = Column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    stock_value = Column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    bond_value = Column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    other_value = Column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    updated_at = Column(DateTime, default=utc_now_lambda, onupdate=utc_now_lambda)

    @property
    def total_value(self) -> Decimal:
        return (
            Decimal(self.cash_value or 0)
            + Decimal(self.stock_value or 0)
            + Decimal(self.bond_value or 0)
            + Decimal(self.other_value or 0)
        )

    def __repr__(self):
        return f"<HistoryPoint {self.date} ${self.total_value}>"
