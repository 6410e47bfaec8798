"""Portfolio API endpoints: value, allocation, holdings and history."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from finsight.core.database import get_db
from finsight.crud.holding import HoldingCRUD
from finsight.models.holding import AssetClass
from finsight.schemas.portfolio import (
    AllocationResponse,
    HistoryValueResponse,
    HoldingChangeRequest,
    HoldingResponse,
    MutationResponse,
    PortfolioValueResponse,
)
from finsight.services.snapshot_service import HISTORY_RANGES, SnapshotService
from finsight.services.valuation_service import ValuationService

logger = logging.getLogger(__name__)

router = APIRouter()

# HTTP status for each rejected mutation; anything else is a plain 400
MUTATION_ERROR_STATUS = {
    "insufficient_balance": status.HTTP_409_CONFLICT,
}


@router.get("", response_model=PortfolioValueResponse)
async def get_portfolio_value(db: AsyncSession = Depends(get_db)):
    """Current total value with gain/loss against the baseline."""
    value = await ValuationService(db).get_total_value()
    return PortfolioValueResponse(
        total=value.total,
        gain_loss=value.gain_loss,
        gain_loss_percent=value.gain_loss_percent,
    )


@router.get("/allocation", response_model=AllocationResponse)
async def get_allocation(db: AsyncSession = Depends(get_db)):
    """Value held in each asset class."""
    breakdown = await ValuationService(db).get_allocation()
    return AllocationResponse(
        cash=breakdown.cash,
        stock=breakdown.stock,
        bond=breakdown.bond,
        other=breakdown.other,
        total=breakdown.total,
    )


@router.get("/holdings", response_model=List[HoldingResponse])
async def list_holdings(db: AsyncSession = Depends(get_db)):
    return await HoldingCRUD.list_all(db)


@router.put("/holdings/{asset_class}", response_model=MutationResponse)
async def change_holding(
    asset_class: str,
    payload: HoldingChangeRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """
    Add to or reduce a holding.

    Rejected changes return ``success: false`` with an ``error_code`` and a
    4xx status; nothing is written in that case.
    """
    result = await ValuationService(db).mutate_holding(
        asset_class, payload.symbol, payload.amount, payload.direction
    )
    if not result.success:
        response.status_code = MUTATION_ERROR_STATUS.get(
            result.error_code, status.HTTP_400_BAD_REQUEST
        )
    return MutationResponse(
        success=result.success,
        new_total=result.new_total,
        error_code=result.error_code,
        message=result.message,
    )


def _check_range(history_range: str) -> str:
    if history_range.lower() not in HISTORY_RANGES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid range '{history_range}'. Supported: {', '.join(HISTORY_RANGES)}",
        )
    return history_range.lower()


@router.get("/history/{history_range}", response_model=List[HistoryValueResponse])
async def get_history(history_range: str, db: AsyncSession = Depends(get_db)):
    """Total value per day, ascending, for 7d / 1m / 6m / all."""
    points = await SnapshotService(db).get_history(_check_range(history_range))
    return [HistoryValueResponse(date=p.date, value=p.value) for p in points]


@router.get("/history/{asset_class}/{history_range}", response_model=List[HistoryValueResponse])
async def get_class_history(
    asset_class: AssetClass,
    history_range: str,
    db: AsyncSession = Depends(get_db),
):
    """Value of one asset class per day, ascending."""
    points = await SnapshotService(db).get_class_history(asset_class, _check_range(history_range))
    return [HistoryValueResponse(date=p.date, value=p.value) for p in points]
