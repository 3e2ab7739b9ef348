"""Turn a stage outcome into the column values a store writes atomically."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from app.core.exceptions import ValidationError

from .models import Article, StageOutcome
from .status import STATUS_TIMESTAMP_FIELD, ArticleStatus, can_transition, get_rule


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def outcome_values(
    article: Article, outcome: StageOutcome, now: datetime | None = None
) -> dict[str, Any]:
    """Columns to write for ``outcome`` against the current ``article``.

    Raises ValidationError when the outcome would move the row backwards.
    """
    now = now or utcnow()
    values: dict[str, Any] = dict(outcome.updates)

    if outcome.status is not None and outcome.status != article.status:
        if not can_transition(article.status, outcome.status):
            raise ValidationError(
                message=f"Illegal transition {article.status.value} -> {outcome.status.value}",
                details={"url": article.url, "stage": outcome.stage.value},
            )
        values["status"] = outcome.status
        stamp = STATUS_TIMESTAMP_FIELD.get(outcome.status)
        if stamp and getattr(article, stamp) is None:
            values[stamp] = now
        if outcome.discarded:
            values["status_reason"] = outcome.reason
    values["updated_at"] = now
    return values


def apply_outcome(
    article: Article, outcome: StageOutcome, now: datetime | None = None
) -> Article | None:
    """Apply ``outcome`` to an in-memory article.

    Returns None when the row is no longer in the stage's input status,
    which is how a concurrent run that already moved it is detected.
    """
    rule = get_rule(outcome.stage)
    if article.status != rule.input_status:
        return None
    values = outcome_values(article, outcome, now)
    if "status" in values:
        values["status"] = ArticleStatus(values["status"])
    return article.copy(**values)
