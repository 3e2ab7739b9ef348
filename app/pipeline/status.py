"""Article lifecycle: closed status set and the stage eligibility table.

Every stage selects rows with the same two-part predicate: the article is
in the stage's input status AND the stage's own output field is still null.
Re-running a stage over rows that already carry its output is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ArticleStatus(str, Enum):
    """Lifecycle of an article row."""

    PENDING = "pending"
    TITLE_FILTERED = "title_filtered"
    CONTENT_FETCHED = "content_fetched"
    LLM_PROCESSED = "llm_processed"
    PERSONALIZED = "personalized"
    RANKED = "ranked"
    DISCARDED = "discarded"


class Stage(str, Enum):
    """Pipeline steps that advance stored articles."""

    TRIAGE = "triage"
    FETCH = "fetch"
    CLASSIFY = "classify"
    PERSONALIZE = "personalize"
    RANK = "rank"


# Forward order of the non-terminal states
STATUS_ORDER: dict[ArticleStatus, int] = {
    ArticleStatus.PENDING: 0,
    ArticleStatus.TITLE_FILTERED: 1,
    ArticleStatus.CONTENT_FETCHED: 2,
    ArticleStatus.LLM_PROCESSED: 3,
    ArticleStatus.PERSONALIZED: 4,
    ArticleStatus.RANKED: 5,
}

# States from which an article may still be discarded
DISCARDABLE: frozenset[ArticleStatus] = frozenset(
    {
        ArticleStatus.PENDING,
        ArticleStatus.TITLE_FILTERED,
        ArticleStatus.CONTENT_FETCHED,
        ArticleStatus.LLM_PROCESSED,
    }
)

# Column stamped the first time a row enters a state
STATUS_TIMESTAMP_FIELD: dict[ArticleStatus, str] = {
    ArticleStatus.TITLE_FILTERED: "title_filtered_at",
    ArticleStatus.CONTENT_FETCHED: "content_fetched_at",
    ArticleStatus.LLM_PROCESSED: "llm_processed_at",
    ArticleStatus.PERSONALIZED: "personalized_at",
    ArticleStatus.RANKED: "ranked_at",
    ArticleStatus.DISCARDED: "discarded_at",
}


@dataclass(frozen=True)
class StageRule:
    """Selection predicate for one stage."""

    stage: Stage
    input_status: ArticleStatus
    output_field: str
    success_status: ArticleStatus
    order_by: str = "published_at"

    def is_eligible(self, article: Any) -> bool:
        status = ArticleStatus(getattr(article, "status"))
        return (
            status == self.input_status
            and getattr(article, self.output_field, None) is None
        )


STAGE_RULES: dict[Stage, StageRule] = {
    Stage.TRIAGE: StageRule(
        Stage.TRIAGE,
        ArticleStatus.PENDING,
        "title_relevance",
        ArticleStatus.TITLE_FILTERED,
    ),
    Stage.FETCH: StageRule(
        Stage.FETCH,
        ArticleStatus.TITLE_FILTERED,
        "clean_text",
        ArticleStatus.CONTENT_FETCHED,
    ),
    Stage.CLASSIFY: StageRule(
        Stage.CLASSIFY,
        ArticleStatus.CONTENT_FETCHED,
        "impact_score",
        ArticleStatus.LLM_PROCESSED,
    ),
    Stage.PERSONALIZE: StageRule(
        Stage.PERSONALIZE,
        ArticleStatus.LLM_PROCESSED,
        "profile_adjusted_score",
        ArticleStatus.PERSONALIZED,
    ),
    Stage.RANK: StageRule(
        Stage.RANK,
        ArticleStatus.PERSONALIZED,
        "final_rank_score",
        ArticleStatus.RANKED,
        order_by="profile_adjusted_score",
    ),
}


def get_rule(stage: Stage) -> StageRule:
    return STAGE_RULES[stage]


def can_transition(current: ArticleStatus, target: ArticleStatus) -> bool:
    """True when moving from current to target never regresses the row."""
    if current == ArticleStatus.DISCARDED:
        return False
    if target == ArticleStatus.DISCARDED:
        return current in DISCARDABLE
    return STATUS_ORDER[target] > STATUS_ORDER[current]
