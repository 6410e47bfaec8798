"""Portfolio schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, Field

from finsight.models.holding import AssetClass


class HoldingResponse(BaseModel):
    """Current holding."""

    id: int
    asset_class: AssetClass
    symbol: Optional[str] = None
    quantity: Decimal
    updated_at: datetime

    model_config = {"from_attributes": True}


class HoldingChangeRequest(BaseModel):
    """Add to or reduce a holding of the asset class given in the path."""

    symbol: Optional[str] = None  # Required for stocks, optional for bonds
    # Kept loose so malformed amounts reach the engine and fail as invalid_amount
    amount: Union[Decimal, str, None] = None
    direction: str = Field("add", description="'add' or 'reduce'")


class MutationResponse(BaseModel):
    success: bool
    new_total: Optional[Decimal] = None
    error_code: Optional[str] = None
    message: Optional[str] = None


class PortfolioValueResponse(BaseModel):
    """Total value with gain/loss against the earliest recorded day."""

    total: Decimal
    gain_loss: Decimal
    gain_loss_percent: Decimal


class AllocationResponse(BaseModel):
    """Value per asset class."""

    cash: Decimal
    stock: Decimal
    bond: Decimal
    other: Decimal
    total: Decimal


class HistoryValueResponse(BaseModel):
    date: date
    value: Decimal
