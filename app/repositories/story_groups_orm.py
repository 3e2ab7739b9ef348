"""Story group repository using SQLAlchemy ORM.

A group is created or touched on its unique key (scope, primary ticker, date
bucket, title); its explanation is upserted; members and related tickers are
insert-if-absent.

Usage:
    from app.repositories import story_groups_orm as story_groups

    group_id = await story_groups.save_story_group(draft, explanation)
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.database.connection import get_session
from app.database.orm import (
    StoryGroup,
    StoryGroupArticle,
    StoryGroupExplanation,
    StoryGroupRelatedTicker,
)
from app.pipeline.story_groups import StoryGroupDraft, explanation_columns


logger = get_logger("repositories.story_groups_orm")


async def save_story_group_with_session(
    session: AsyncSession, draft: StoryGroupDraft, explanation: dict[str, Any] | None
) -> int:
    stmt = insert(StoryGroup).values(
        scope=draft.scope,
        primary_ticker=draft.primary_ticker or "",
        date_bucket=draft.date_bucket,
        group_title=draft.group_title,
        cluster_id=draft.cluster_id,
        impact_level=draft.impact_level,
        confidence_level=draft.confidence_level,
        model_version=draft.model_version,
        pipeline_version=draft.pipeline_version,
    )
    stmt = stmt.on_conflict_do_update(
        constraint="uq_story_groups_key",
        set_={
            "impact_level": stmt.excluded.impact_level,
            "confidence_level": stmt.excluded.confidence_level,
            "model_version": stmt.excluded.model_version,
            "pipeline_version": stmt.excluded.pipeline_version,
            "cluster_id": stmt.excluded.cluster_id,
            "updated_at": func.now(),
        },
    ).returning(StoryGroup.id)
    group_id = (await session.execute(stmt)).scalar_one()

    if explanation is not None:
        columns = explanation_columns(explanation)
        exp_stmt = insert(StoryGroupExplanation).values(story_group_id=group_id, **columns)
        exp_stmt = exp_stmt.on_conflict_do_update(
            index_elements=[StoryGroupExplanation.story_group_id],
            set_={**{key: getattr(exp_stmt.excluded, key) for key in columns}, "updated_at": func.now()},
        )
        await session.execute(exp_stmt)

    if draft.members:
        await session.execute(
            insert(StoryGroupArticle)
            .values([
                {"story_group_id": group_id, "article_url": url, "similarity_score": similarity}
                for url, similarity in draft.members
            ])
            .on_conflict_do_nothing()
        )

    if draft.related_tickers:
        await session.execute(
            insert(StoryGroupRelatedTicker)
            .values([
                {"story_group_id": group_id, "ticker": ticker, "relationship_type": kind}
                for ticker, kind in draft.related_tickers
            ])
            .on_conflict_do_nothing()
        )

    return group_id


async def save_story_group(draft: StoryGroupDraft, explanation: dict[str, Any] | None) -> int:
    async with get_session() as session:
        group_id = await save_story_group_with_session(session, draft, explanation)
        await session.commit()
    logger.debug(f"Story group {group_id} saved: [{draft.scope}] {draft.group_title[:50]}")
    return group_id


async def list_story_groups(date_bucket: str, limit: int = 50) -> list[StoryGroup]:
    async with get_session() as session:
        result = await session.execute(
            select(StoryGroup)
            .where(StoryGroup.date_bucket == date_bucket)
            .order_by(StoryGroup.updated_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
