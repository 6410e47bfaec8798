"""CRUD operations for the daily history table."""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from finsight.models.history_point import HistoryPoint
from finsight.utils.datetime_utils import utc_now, utc_today

VALUE_COLUMNS = ("cash_value", "stock_value", "bond_value", "other_value")


class HistoryCRUD:
    """Upsert-by-date writes and ordered range reads over HistoryPoint."""

    @staticmethod
    async def upsert(
        db: AsyncSession,
        point_date: date,
        cash_value: Decimal,
        stock_value: Decimal,
        bond_value: Decimal,
        other_value: Decimal,
        today: Optional[date] = None,
    ) -> HistoryPoint:
        """
        Write the row for ``point_date``.

        Today's row is overwritten with the new class values. A row for an
        earlier date is written once and then left alone. Either way the
        insert uses ON CONFLICT (date), so two writers for the same date
        always leave exactly one row.
        """
        values = {
            "date": point_date,
            "cash_value": cash_value,
            "stock_value": stock_value,
            "bond_value": bond_value,
            "other_value": other_value,
            "updated_at": utc_now(),
        }
        overwrite = point_date >= (today or utc_today())

        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(HistoryPoint).values(**values)
        elif dialect == "sqlite":
            stmt = sqlite_insert(HistoryPoint).values(**values)
        else:
            return await HistoryCRUD._select_then_write(db, values, overwrite)

        if overwrite:
            stmt = stmt.on_conflict_do_update(
                index_elements=[HistoryPoint.date],
                set_={
                    "cash_value": stmt.excluded.cash_value,
                    "stock_value": stmt.excluded.stock_value,
                    "bond_value": stmt.excluded.bond_value,
                    "other_value": stmt.excluded.other_value,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=[HistoryPoint.date])
        await db.execute(stmt)

        return await HistoryCRUD.get_by_date(db, point_date)

    @staticmethod
    async def _select_then_write(db: AsyncSession, values: dict, overwrite: bool) -> HistoryPoint:
        point = await HistoryCRUD.get_by_date(db, values["date"])
        if point is None:
            point = HistoryPoint(**values)
            db.add(point)
        elif overwrite:
            for column in VALUE_COLUMNS + ("updated_at",):
                setattr(point, column, values[column])
        await db.flush()
        return point

    @staticmethod
    async def get_by_date(db: AsyncSession, point_date: date) -> Optional[HistoryPoint]:
        result = await db.execute(
            select(HistoryPoint)
            .where(HistoryPoint.date == point_date)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_since(db: AsyncSession, start: Optional[date] = None) -> List[HistoryPoint]:
        """
        Rows dated on or after ``start``, ascending by date.

        ``start=None`` returns every row.
        """
        query = select(HistoryPoint).order_by(HistoryPoint.date.asc())
        if start is not None:
            query = query.where(HistoryPoint.date >= start)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_earliest(db: AsyncSession) -> Optional[HistoryPoint]:
        result = await db.execute(
            select(HistoryPoint).order_by(HistoryPoint.date.asc()).limit(1)
        )
        return result.scalar_one_or_none()
