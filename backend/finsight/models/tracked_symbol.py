"""Persisted symbol sets (featured stocks, recommendation watchlist)."""

import enum

from sqlalchemy import Column, DateTime, Enum as SQLEnum, Integer, String, UniqueConstraint

from finsight.core.database import Base
from finsight.utils.datetime_utils import utc_now_lambda


class TrackedList(str, enum.Enum):
    FEATURED = "featured"
    RECOMMENDATIONS = "recommendations"


class TrackedSymbol(Base):
    """Membership of a symbol in one of the tracked lists."""

    __tablename__ = "tracked_symbols"

    id = Column(Integer, primary_key=True, autoincrement=True)
    list_name = Column(
        SQLEnum(
            TrackedList,
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        index=True,
    )
    symbol = Column(String(16), nullable=False)
    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)

    __table_args__ = (
        UniqueConstraint("list_name", "symbol", name="uq_tracked_list_symbol"),
    )
