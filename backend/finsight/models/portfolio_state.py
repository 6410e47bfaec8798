"""Single-row aggregate with the latest portfolio totals."""

from sqlalchemy import Column, DateTime, Integer, Numeric

from finsight.core.database import Base
from finsight.utils.datetime_utils import utc_now_lambda

PORTFOLIO_STATE_ID = 1


class PortfolioState(Base):
    """Latest computed total and gain/loss, always stored under id 1."""

    __tablename__ = "portfolio_state"

    id = Column(Integer, primary_key=True, autoincrement=False, default=PORTFOLIO_STATE_ID)
    total_value = Column(Numeric(14, 2), nullable=False)
    gain_loss = Column(Numeric(14, 2), nullable=False)
    gain_loss_percent = Column(Numeric(10, 2), nullable=False)
    updated_at = Column(DateTime, default=utc_now_lambda, onupdate=utc_now_lambda, nullable=False)
