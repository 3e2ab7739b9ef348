"""Run one per-article stage over a bounded batch of eligible rows."""

from __future__ import annotations

import inspect
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union

from app.core.logging import get_logger

from .models import Article, StageOutcome
from .status import Stage
from .store import ArticleStore

logger = get_logger("pipeline.runner")

Handler = Callable[[Article], Union[StageOutcome, Awaitable[StageOutcome]]]


@dataclass
class StageReport:
    stage: Stage
    selected: int = 0
    advanced: int = 0
    discarded: int = 0
    retried: int = 0
    stale: int = 0
    errors: int = 0
    duration_s: float = 0.0
    discard_reasons: Counter = field(default_factory=Counter)

    @property
    def processed(self) -> int:
        return self.advanced + self.discarded + self.retried

    def summary(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "selected": self.selected,
            "advanced": self.advanced,
            "discarded": self.discarded,
            "retried": self.retried,
            "stale": self.stale,
            "errors": self.errors,
            "duration_s": round(self.duration_s, 2),
            "top_discard_reasons": self.discard_reasons.most_common(3),
        }


def _reason_key(reason: str | None) -> str:
    # Group "below gate 15" style reasons by their leading words
    return " ".join((reason or "unknown").split()[:3])


async def run_stage(
    store: ArticleStore, stage: Stage, handler: Handler, limit: int
) -> StageReport:
    """Select, handle and persist; one bad row never stops the batch."""
    report = StageReport(stage=stage)
    start = time.monotonic()

    articles = await store.select_for_stage(stage, limit)
    report.selected = len(articles)

    for article in articles:
        try:
            outcome = handler(article)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            applied = await store.apply_outcome(outcome)
        except Exception:
            report.errors += 1
            logger.exception(f"[{stage.value}] failed for {article.url}")
            continue

        if not applied:
            report.stale += 1
        elif outcome.discarded:
            report.discarded += 1
            report.discard_reasons[_reason_key(outcome.reason)] += 1
        elif outcome.status is None:
            report.retried += 1
        else:
            report.advanced += 1

    report.duration_s = time.monotonic() - start
    if report.selected:
        logger.info(
            f"[{stage.value}] {report.advanced} advanced, {report.discarded} discarded, "
            f"{report.retried} retried of {report.selected}",
            extra={"extra_fields": report.summary()},
        )
    return report
