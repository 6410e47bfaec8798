"""Last-known quote per traded symbol."""

from sqlalchemy import Column, DateTime, Integer, Numeric, String

from finsight.core.database import Base


class PriceSnapshot(Base):
    """
    Cached quote for one symbol.

    Written only after a successful provider call and never deleted. The price
    is a point estimate as of ``last_refreshed``.
    """

    __tablename__ = "price_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(16), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    price = Column(Numeric(14, 4), nullable=False)
    change_percent = Column(Numeric(8, 2), nullable=True)
    last_refreshed = Column(DateTime, nullable=True, index=True)

    def __repr__(self):
        return f"<PriceSnapshot {self.symbol} ${self.price} @ {self.last_refreshed}>"
