"""PostgreSQL-backed ArticleStore used by the pipeline jobs."""

from __future__ import annotations

from typing import Any

from app.pipeline.models import Article, ArticleRecord, Holding, StageOutcome
from app.pipeline.status import Stage
from app.pipeline.store import UpsertResult
from app.pipeline.story_groups import StoryGroupDraft

from . import articles_orm, holdings_orm, story_groups_orm


class SqlArticleStore:
    async def upsert_records(self, records: list[ArticleRecord]) -> UpsertResult:
        return await articles_orm.upsert_records(records)

    async def select_for_stage(self, stage: Stage, limit: int) -> list[Article]:
        return await articles_orm.select_for_stage(stage, limit)

    async def apply_outcome(self, outcome: StageOutcome) -> bool:
        return await articles_orm.apply_outcome(outcome)

    async def list_holdings(self, user_id: int) -> list[Holding]:
        return await holdings_orm.list_holdings(user_id)

    async def save_story_group(
        self, draft: StoryGroupDraft, explanation: dict[str, Any] | None
    ) -> int:
        return await story_groups_orm.save_story_group(draft, explanation)

    async def list_feed(self, limit: int) -> list[Article]:
        return await articles_orm.list_feed(limit)
