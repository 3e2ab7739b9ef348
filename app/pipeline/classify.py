"""Classify stage: the expensive oracle read of the full text.

The oracle is optional. Without an API key, with the circuit open, or when
the reply is unusable, the stage derives a deterministic classification from
the triage outputs so articles keep flowing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Protocol

from app.core.config import settings
from app.core.logging import get_logger
from app.services.openai.contexts import ClassificationContext
from app.services.openai.schemas import ClassificationOutput

from .models import Article, StageOutcome
from .status import ArticleStatus, Stage

logger = get_logger("pipeline.classify")


POSITIVE_WORDS = frozenset({
    "beat", "beats", "surge", "surges", "rally", "rallies", "gain", "gains", "rise", "rises",
    "record", "upgrade", "upgraded", "growth", "profit", "strong", "boost", "approval", "approved",
})
NEGATIVE_WORDS = frozenset({
    "miss", "misses", "fall", "falls", "drop", "drops", "plunge", "plunges", "cut", "cuts",
    "lawsuit", "downgrade", "downgraded", "loss", "losses", "weak", "probe", "recall", "layoffs",
    "bankruptcy", "slump", "decline", "declines",
})

WORD = re.compile(r"[a-z]+")


class Classifier(Protocol):
    @property
    def available(self) -> bool: ...

    async def classify(self, context: ClassificationContext) -> ClassificationOutput: ...


def heuristic_classification(article: Article) -> ClassificationOutput:
    """Classification from triage outputs and simple word counts."""
    words = WORD.findall(f"{article.title or ''} {article.clean_text or ''}".lower())
    positive = sum(1 for w in words if w in POSITIVE_WORDS)
    negative = sum(1 for w in words if w in NEGATIVE_WORDS)
    sentiment = (positive - negative) / max(1, positive + negative)
    if sentiment > 0.2:
        label = "positive"
    elif sentiment < -0.2:
        label = "negative"
    else:
        label = "neutral"

    if article.likely_impact is not None:
        impact = article.likely_impact
    else:
        impact = (article.title_relevance or 0) * 20 + 10

    return ClassificationOutput(
        event_type=article.title_event_type or "other",
        impact_score=impact,
        sentiment=round(sentiment, 2),
        sentiment_label=label,
        risk_score=impact * 0.5 + negative * 10,
        opportunity_score=impact * 0.5 + positive * 10,
        volatility_score=impact * 0.6,
        matched_tickers=list(article.title_ticker_matches),
        matched_sectors=list(article.title_sector_matches),
    )


@dataclass
class ClassificationStage:
    classifier: Classifier | None = None
    min_chars: int | None = None

    def __post_init__(self):
        if self.min_chars is None:
            self.min_chars = settings.classify_min_content_chars

    async def run(self, article: Article) -> StageOutcome:
        length = article.content_length or len(article.clean_text or "")
        if length < self.min_chars:
            return StageOutcome(
                stage=Stage.CLASSIFY,
                url=article.url,
                updates={"impact_score": 0},
                status=ArticleStatus.DISCARDED,
                reason=f"Content too short: {length} < {self.min_chars}",
            )

        attempts = article.llm_attempts + 1
        updates: dict = {"llm_attempts": attempts}
        output: ClassificationOutput | None = None

        if self.classifier is not None and self.classifier.available:
            context = ClassificationContext(
                title=article.title,
                clean_text=article.clean_text or "",
                searched_by=article.searched_by,
            )
            try:
                output = await self.classifier.classify(context)
            except Exception as e:
                logger.warning(f"Oracle classification failed for {article.url}: {e}")
                updates["last_error"] = f"classify: {e}"[:500]

        if output is None:
            output = heuristic_classification(article)

        updates.update(output.columns())
        return StageOutcome(
            stage=Stage.CLASSIFY,
            url=article.url,
            updates=updates,
            status=ArticleStatus.LLM_PROCESSED,
        )
