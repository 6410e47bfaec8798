"""Current-state holdings and their bond companion records."""

import enum

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
    literal_column,
)
from sqlalchemy.orm import relationship

from finsight.core.database import Base
from finsight.utils.datetime_utils import utc_now_lambda


class AssetClass(str, enum.Enum):
    """Asset classes tracked by the portfolio."""

    CASH = "cash"
    BOND = "bond"
    STOCK = "stock"
    OTHER = "other"

    @property
    def requires_symbol(self) -> bool:
        return self is AssetClass.STOCK

    @property
    def accepts_symbol(self) -> bool:
        """Stocks must carry a symbol, bonds may, cash and other never do."""
        return self in (AssetClass.STOCK, AssetClass.BOND)

    @property
    def is_priced(self) -> bool:
        """Priced classes store share counts; the rest store currency amounts."""
        return self is AssetClass.STOCK

    @property
    def quantity_places(self) -> int:
        """Decimal places a quantity of this class may carry."""
        return 6 if self is AssetClass.STOCK else 2


class Holding(Base):
    """
    One row per (asset class, symbol-or-null).

    Stocks store a share count that is valued against the price cache; cash,
    bonds and other store a currency amount directly. A holding whose quantity
    reaches zero is deleted rather than kept.
    """

    __tablename__ = "holdings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    asset_class = Column(
        SQLEnum(
            AssetClass,
            native_enum=False,
            length=10,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        index=True,
    )
    symbol = Column(String(16), nullable=True)  # Required for stocks (e.g., "AAPL")
    quantity = Column(Numeric(18, 6), nullable=False)

    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)
    updated_at = Column(DateTime, default=utc_now_lambda, onupdate=utc_now_lambda, nullable=False)

    bond_detail = relationship(
        "BondDetail",
        back_populates="holding",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Holding {self.asset_class.value}:{self.symbol or '-'} {self.quantity}>"


# Null symbols are folded to '' so the symbol-less row per class is unique too
Index(
    "uq_holdings_class_symbol",
    Holding.asset_class,
    func.coalesce(Holding.symbol, literal_column("''")),
    unique=True,
)


class BondDetail(Base):
    """
    Companion record for a bond holding.

    ``face_amount`` mirrors the parent holding's quantity and is written in
    the same transaction as every change to it.
    """

    __tablename__ = "bond_details"

    id = Column(Integer, primary_key=True, autoincrement=True)
    holding_id = Column(
        Integer,
        ForeignKey("holdings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    face_amount = Column(Numeric(18, 6), nullable=False)
    issuer = Column(String(255), nullable=True)
    coupon_rate = Column(Numeric(7, 4), nullable=True)  # Annual rate as percent (e.g., 4.2500)
    maturity_date = Column(Date, nullable=True)

    updated_at = Column(DateTime, default=utc_now_lambda, onupdate=utc_now_lambda, nullable=False)

    holding = relationship("Holding", back_populates="bond_detail")
