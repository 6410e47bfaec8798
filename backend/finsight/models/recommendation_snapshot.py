"""Last-known analyst recommendation counts per symbol."""

from sqlalchemy import Column, DateTime, Integer, String

from finsight.core.database import Base


class RecommendationSnapshot(Base):
    """Analyst recommendation trend for the most recent period of one symbol."""

    __tablename__ = "recommendation_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(16), nullable=False, unique=True, index=True)
    period = Column(String(20), nullable=True)  # e.g. "0m" or "2024-06-01"

    strong_buy = Column(Integer, nullable=False, default=0)
    buy = Column(Integer, nullable=False, default=0)
    hold = Column(Integer, nullable=False, default=0)
    sell = Column(Integer, nullable=False, default=0)
    strong_sell = Column(Integer, nullable=False, default=0)

    last_refreshed = Column(DateTime, nullable=True)

    @property
    def total_analysts(self) -> int:
        return self.strong_buy + self.buy + self.hold + self.sell + self.strong_sell

    def __repr__(self):
        return f"<RecommendationSnapshot {self.symbol} {self.period}>"
