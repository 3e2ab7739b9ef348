"""Persistence boundary the pipeline runs against.

The SQL implementation lives in app.repositories.article_store; tests use an
in-memory one. Both must apply outcomes conditionally: a row that has left
the stage's input status is not touched.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from .models import Article, ArticleRecord, Holding, StageOutcome
from .status import Stage
from .story_groups import StoryGroupDraft


@dataclass
class UpsertResult:
    inserted: int = 0
    merged: int = 0
    failed: int = 0

    @property
    def stored(self) -> int:
        return self.inserted + self.merged


def decision_values(article: Article, outcome: StageOutcome) -> dict[str, Any]:
    """Audit row for one applied outcome."""
    updates = outcome.updates
    return {
        "article_url": outcome.url,
        "stage_name": outcome.stage.value,
        "accepted": not outcome.discarded,
        "reason": outcome.reason or updates.get("title_reason_short") or updates.get("last_error"),
        "rank_score": updates.get("final_rank_score", article.final_rank_score),
        "impact_score": updates.get("impact_score", article.impact_score),
        "quality_score": updates.get(
            "profile_adjusted_score",
            updates.get("likely_impact", article.profile_adjusted_score),
        ),
    }


class ArticleStore(Protocol):
    async def upsert_records(self, records: list[ArticleRecord]) -> UpsertResult:
        """Insert unseen URLs, merge seen ones through merge_article."""
        ...

    async def select_for_stage(self, stage: Stage, limit: int) -> list[Article]: ...

    async def apply_outcome(self, outcome: StageOutcome) -> bool: ...

    async def list_holdings(self, user_id: int) -> list[Holding]: ...

    async def save_story_group(
        self, draft: StoryGroupDraft, explanation: dict[str, Any] | None
    ) -> int: ...

    async def list_feed(self, limit: int) -> list[Article]: ...
