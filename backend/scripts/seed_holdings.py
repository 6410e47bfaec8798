"""Seed the sample holdings when the holdings table is empty.

Holdings are added through the valuation engine so bond companion records
and today's history row are written exactly as a user change would.
"""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# Add parent directory to path
sys.path.append(str(Path(__file__).parent.parent))

from finsight.core.database import AsyncSessionLocal, init_db
from finsight.core.logging_config import get_logger, setup_logging
from finsight.crud.holding import HoldingCRUD
from finsight.models.holding import AssetClass
from finsight.services.valuation_service import ValuationService

logger = get_logger(__name__)

SAMPLE_HOLDINGS = [
    (AssetClass.CASH, None, Decimal("5000")),
    (AssetClass.STOCK, "AAPL", Decimal("10")),
    (AssetClass.STOCK, "NVDA", Decimal("5")),
    (AssetClass.BOND, None, Decimal("2000")),
    (AssetClass.OTHER, None, Decimal("1000")),
]


async def seed_holdings() -> int:
    """Insert the sample holdings; returns how many were added."""
    await init_db()

    async with AsyncSessionLocal() as db:
        if await HoldingCRUD.list_all(db):
            logger.info("seed_skipped", reason="holdings already present")
            return 0

        engine = ValuationService(db)
        for asset_class, symbol, amount in SAMPLE_HOLDINGS:
            result = await engine.mutate_holding(asset_class, symbol, amount, "add")
            if not result.success:
                logger.error(
                    "seed_failed",
                    asset_class=asset_class.value,
                    symbol=symbol,
                    error_code=result.error_code,
                )
                return 0

        total = await engine.compute_total_value()
        logger.info("seed_complete", holdings=len(SAMPLE_HOLDINGS), total=str(total))
        return len(SAMPLE_HOLDINGS)


if __name__ == "__main__":
    setup_logging()
    asyncio.run(seed_holdings())
