"""Top-N entries of the market screener lists."""

import enum

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Enum as SQLEnum,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)

from finsight.core.database import Base


class MarketListType(str, enum.Enum):
    """Screener lists exposed by the market data providers."""

    GAINERS = "gainers"
    LOSERS = "losers"
    MOST_ACTIVE = "most-active"

    @property
    def screener_id(self) -> str:
        """Predefined screener name on Yahoo Finance."""
        return {
            MarketListType.GAINERS: "day_gainers",
            MarketListType.LOSERS: "day_losers",
            MarketListType.MOST_ACTIVE: "most_actives",
        }[self]


class MarketListEntry(Base):
    """
    One quote on a screener list.

    All rows of a list type are replaced together on refresh.
    """

    __tablename__ = "market_list_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    list_type = Column(
        SQLEnum(
            MarketListType,
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        index=True,
    )
    rank = Column(Integer, nullable=False)
    symbol = Column(String(16), nullable=False)
    name = Column(String(255), nullable=True)
    price = Column(Numeric(14, 4), nullable=True)
    change = Column(Numeric(14, 4), nullable=True)
    change_percent = Column(Numeric(10, 4), nullable=True)
    volume = Column(BigInteger, nullable=True)
    market_cap = Column(Numeric(20, 2), nullable=True)
    fifty_two_week_range = Column(String(64), nullable=True)  # e.g. "120.50 - 198.23"
    last_refreshed = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("list_type", "symbol", name="uq_market_list_type_symbol"),
    )

    def __repr__(self):
        return f"<MarketListEntry {self.list_type.value}#{self.rank} {self.symbol}>"
