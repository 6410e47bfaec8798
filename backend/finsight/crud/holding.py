"""CRUD operations for holdings and bond companion records.

No business validation happens here. These helpers persist exactly what they
are given, keep the one-row-per-(class, symbol) invariant, and only flush: the
caller owns the transaction.
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from finsight.models.holding import AssetClass, BondDetail, Holding


def _identity(asset_class: AssetClass, symbol: Optional[str]):
    """WHERE clause matching the single row for a class and symbol-or-null."""
    if symbol is None:
        return (Holding.asset_class == asset_class, Holding.symbol.is_(None))
    return (Holding.asset_class == asset_class, Holding.symbol == symbol)


class HoldingCRUD:
    """CRUD operations for Holding model."""

    @staticmethod
    async def get(
        db: AsyncSession,
        asset_class: AssetClass,
        symbol: Optional[str] = None,
        for_update: bool = False,
    ) -> Optional[Holding]:
        """Get the holding for a class and symbol, optionally locking the row."""
        query = (
            select(Holding)
            .where(*_identity(asset_class, symbol))
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_id(db: AsyncSession, holding_id: int) -> Optional[Holding]:
        result = await db.execute(
            select(Holding)
            .where(Holding.id == holding_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_all(db: AsyncSession) -> List[Holding]:
        """All holdings ordered by class then symbol."""
        result = await db.execute(
            select(Holding)
            .order_by(Holding.asset_class, Holding.symbol)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    async def upsert_quantity(
        db: AsyncSession,
        asset_class: AssetClass,
        symbol: Optional[str],
        new_quantity: Decimal,
    ) -> Holding:
        """Set the quantity of a holding, creating the row if it does not exist."""
        holding = await HoldingCRUD.get(db, asset_class, symbol)
        if holding is not None:
            holding.quantity = new_quantity
            await db.flush()
            return holding

        holding = Holding(asset_class=asset_class, symbol=symbol, quantity=new_quantity)
        try:
            async with db.begin_nested():
                db.add(holding)
        except IntegrityError:
            # Another writer created the row first
            holding = await HoldingCRUD.get(db, asset_class, symbol)
            holding.quantity = new_quantity
            await db.flush()
        return holding

    @staticmethod
    async def increment(
        db: AsyncSession,
        asset_class: AssetClass,
        symbol: Optional[str],
        delta: Decimal,
    ) -> Holding:
        """
        Atomically add ``delta`` to a holding, creating it on first add.

        The addition runs as a single UPDATE so concurrent adds never lose
        each other's writes. The stored sum is rounded to the class precision.
        """
        places = asset_class.quantity_places
        for _ in range(2):
            result = await db.execute(
                update(Holding)
                .where(*_identity(asset_class, symbol))
                .values(quantity=func.round(Holding.quantity + delta, places))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount:
                return await HoldingCRUD.get(db, asset_class, symbol)

            try:
                async with db.begin_nested():
                    holding = Holding(asset_class=asset_class, symbol=symbol, quantity=delta)
                    db.add(holding)
                return holding
            except IntegrityError:
                # Lost an insert race; the row exists now, so retry the UPDATE
                continue

        raise RuntimeError(f"Could not create holding {asset_class.value}:{symbol}")

    @staticmethod
    async def decrement_if_sufficient(
        db: AsyncSession, holding_id: int, delta: Decimal, places: int = 6
    ) -> Optional[Decimal]:
        """
        Subtract ``delta`` only while the stored quantity covers it.

        Implemented as ``UPDATE ... WHERE quantity >= delta`` so the sufficiency
        check and the write cannot be split by a concurrent reduce. The
        remainder is rounded to ``places`` decimal places.

        Returns:
            The remaining quantity, or None when the balance was insufficient
        """
        result = await db.execute(
            update(Holding)
            .where(Holding.id == holding_id, Holding.quantity >= delta)
            .values(quantity=func.round(Holding.quantity - delta, places))
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            return None

        holding = await HoldingCRUD.get_by_id(db, holding_id)
        return Decimal(holding.quantity)

    @staticmethod
    async def delete(db: AsyncSession, holding_id: int) -> bool:
        """Delete a holding together with its bond companion, if any."""
        await db.execute(delete(BondDetail).where(BondDetail.holding_id == holding_id))
        result = await db.execute(delete(Holding).where(Holding.id == holding_id))
        return bool(result.rowcount)

    @staticmethod
    async def get_bond_detail(db: AsyncSession, holding_id: int) -> Optional[BondDetail]:
        result = await db.execute(
            select(BondDetail)
            .where(BondDetail.holding_id == holding_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def set_bond_face_amount(
        db: AsyncSession, holding_id: int, face_amount: Decimal
    ) -> BondDetail:
        """Write the companion face amount, creating the companion if missing."""
        detail = await HoldingCRUD.get_bond_detail(db, holding_id)
        if detail is None:
            detail = BondDetail(holding_id=holding_id, face_amount=face_amount)
            db.add(detail)
        else:
            detail.face_amount = face_amount
        await db.flush()
        return detail
