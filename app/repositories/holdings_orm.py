"""Holdings repository using SQLAlchemy ORM.

Usage:
    from app.repositories import holdings_orm as holdings

    tracked = await holdings.list_holdings(user_id=1)
    await holdings.upsert_holding("AAPL", label="Apple")
"""

from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert

from app.core.config import settings
from app.core.logging import get_logger
from app.database.connection import get_session
from app.database.orm import Holding as HoldingRow
from app.pipeline.models import Holding


logger = get_logger("repositories.holdings_orm")


async def list_holdings(user_id: int | None = None) -> list[Holding]:
    user_id = settings.default_user_id if user_id is None else user_id
    async with get_session() as session:
        result = await session.execute(
            select(HoldingRow).where(HoldingRow.user_id == user_id).order_by(HoldingRow.id)
        )
        return [Holding.from_orm(row) for row in result.scalars().all()]


async def upsert_holding(
    ticker: str,
    label: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> None:
    user_id = settings.default_user_id if user_id is None else user_id
    stmt = insert(HoldingRow).values(
        user_id=user_id, ticker=ticker.upper(), label=label, notes=notes
    )
    stmt = stmt.on_conflict_do_update(
        constraint="uq_holdings_user_ticker",
        set_={"label": stmt.excluded.label, "notes": stmt.excluded.notes},
    )
    async with get_session() as session:
        await session.execute(stmt)
        await session.commit()
    logger.info(f"Holding saved: {ticker.upper()} (user {user_id})")


async def delete_holding(ticker: str, user_id: int | None = None) -> bool:
    user_id = settings.default_user_id if user_id is None else user_id
    async with get_session() as session:
        result = await session.execute(
            delete(HoldingRow).where(
                HoldingRow.user_id == user_id, HoldingRow.ticker == ticker.upper()
            )
        )
        await session.commit()
        return result.rowcount > 0
