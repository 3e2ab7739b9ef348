"""Article repository using SQLAlchemy ORM.

Usage:
    from app.repositories import articles_orm as articles

    result = await articles.upsert_records(records)
    batch = await articles.select_for_stage(Stage.TRIAGE, limit=20)
    applied = await articles.apply_outcome(outcome)

Usage (manual session control):
    async with get_session() as session:
        applied = await articles.apply_outcome_with_session(session, outcome)
        await session.commit()
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.database.connection import get_session
from app.database.orm import Article as ArticleRow
from app.database.orm import ArticleDecision
from app.pipeline.merge import ingest_values, merge_article
from app.pipeline.models import Article, ArticleRecord, StageOutcome
from app.pipeline.status import ArticleStatus, Stage, get_rule
from app.pipeline.store import UpsertResult, decision_values
from app.pipeline.transitions import outcome_values


logger = get_logger("repositories.articles_orm")


def _column_values(values: dict[str, Any]) -> dict[str, Any]:
    return {
        key: value.value if isinstance(value, ArticleStatus) else value
        for key, value in values.items()
    }


# =============================================================================
# SESSION-BASED FUNCTIONS
# =============================================================================

async def upsert_record_with_session(session: AsyncSession, record: ArticleRecord) -> bool:
    """Insert or merge one record. Returns True when a new row was created."""
    row = await session.get(ArticleRow, record.url, with_for_update=True)
    if row is None:
        article = merge_article(None, record)
        session.add(
            ArticleRow(
                url=article.url,
                status=article.status.value,
                **ingest_values(article),
            )
        )
        await session.flush()
        return True

    merged = merge_article(Article.from_orm(row), record)
    for key, value in ingest_values(merged).items():
        setattr(row, key, value)
    await session.flush()
    return False


async def upsert_records_with_session(
    session: AsyncSession, records: list[ArticleRecord]
) -> UpsertResult:
    """Each row runs in its own savepoint so one bad row is skipped alone."""
    result = UpsertResult()
    for record in records:
        try:
            async with session.begin_nested():
                if await upsert_record_with_session(session, record):
                    result.inserted += 1
                else:
                    result.merged += 1
        except Exception as e:
            result.failed += 1
            logger.warning(f"Failed to store article {record.url}: {e}")
    return result


async def select_for_stage_with_session(
    session: AsyncSession, stage: Stage, limit: int
) -> list[Article]:
    rule = get_rule(stage)
    order_column = getattr(ArticleRow, rule.order_by)
    result = await session.execute(
        select(ArticleRow)
        .where(
            and_(
                ArticleRow.status == rule.input_status.value,
                getattr(ArticleRow, rule.output_field).is_(None),
            )
        )
        .order_by(order_column.desc().nulls_last(), ArticleRow.created_at.asc())
        .limit(limit)
    )
    return [Article.from_orm(row) for row in result.scalars().all()]


async def apply_outcome_with_session(session: AsyncSession, outcome: StageOutcome) -> bool:
    """Write an outcome if the row is still in the stage's input status.

    Returns False when another run already moved the row on.
    """
    rule = get_rule(outcome.stage)
    result = await session.execute(
        select(ArticleRow)
        .where(and_(ArticleRow.url == outcome.url, ArticleRow.status == rule.input_status.value))
        .with_for_update()
    )
    row = result.scalar_one_or_none()
    if row is None:
        return False

    current = Article.from_orm(row)
    values = _column_values(outcome_values(current, outcome))
    updated = await session.execute(
        update(ArticleRow)
        .where(and_(ArticleRow.url == outcome.url, ArticleRow.status == rule.input_status.value))
        .values(**values)
        .returning(ArticleRow.url)
    )
    if updated.scalar_one_or_none() is None:
        return False

    if outcome.status is not None:
        session.add(ArticleDecision(**decision_values(current, outcome)))
    return True


async def list_feed_with_session(session: AsyncSession, limit: int) -> list[Article]:
    result = await session.execute(
        select(ArticleRow)
        .where(and_(ArticleRow.status == ArticleStatus.RANKED.value, ArticleRow.shown_to_user.is_(True)))
        .order_by(ArticleRow.final_rank_score.desc(), ArticleRow.published_at.desc().nulls_last())
        .limit(limit)
    )
    return [Article.from_orm(row) for row in result.scalars().all()]


# =============================================================================
# SIMPLE API (auto session management)
# =============================================================================

async def upsert_records(records: list[ArticleRecord]) -> UpsertResult:
    async with get_session() as session:
        result = await upsert_records_with_session(session, records)
        await session.commit()
    logger.info(
        f"Stored {result.stored} articles ({result.inserted} new, {result.merged} merged, {result.failed} failed)"
    )
    return result


async def select_for_stage(stage: Stage, limit: int) -> list[Article]:
    async with get_session() as session:
        return await select_for_stage_with_session(session, stage, limit)


async def apply_outcome(outcome: StageOutcome) -> bool:
    async with get_session() as session:
        applied = await apply_outcome_with_session(session, outcome)
        await session.commit()
        return applied


async def list_feed(limit: int = 50) -> list[Article]:
    async with get_session() as session:
        return await list_feed_with_session(session, limit)
