"""Turn shown clusters into story-group drafts and explanation columns."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from app.core.config import settings
from app.services.openai.contexts import ExplanationEvent, RawArticle

from .ranking import ArticleCluster

SCOPE_GLOBAL = "GLOBAL"
SCOPE_TICKER = "TICKER"


@dataclass
class StoryGroupDraft:
    scope: str
    primary_ticker: str | None
    date_bucket: str
    group_title: str
    impact_level: str
    confidence_level: str
    model_version: str
    pipeline_version: str
    cluster_id: str
    # (article_url, similarity to the seed)
    members: list[tuple[str, float]] = field(default_factory=list)
    # (ticker, relationship_type)
    related_tickers: list[tuple[str, str]] = field(default_factory=list)
    event: ExplanationEvent | None = None


def impact_level(score: int | None) -> str:
    score = score or 0
    if score >= 70:
        return "high"
    if score >= 40:
        return "medium"
    return "low"


def confidence_level(size: int) -> str:
    if size >= 3:
        return "High"
    if size == 2:
        return "Medium"
    return "Low"


def date_bucket(published_at: datetime | None, now: datetime | None = None) -> str:
    moment = published_at or now or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%d")


def build_story_group(
    cluster: ArticleCluster, model_version: str | None = None, now: datetime | None = None
) -> StoryGroupDraft:
    primary = cluster.primary.article
    holdings = list(primary.matched_holdings)
    primary_ticker = holdings[0] if holdings else None
    level = impact_level(primary.impact_score)

    related: list[tuple[str, str]] = []
    seen: set[str] = set()

    def relate(ticker: str, kind: str) -> None:
        ticker = ticker.upper()
        if ticker not in seen:
            seen.add(ticker)
            related.append((ticker, kind))

    if primary_ticker:
        relate(primary_ticker, "primary")
    for member in cluster.members:
        for ticker in member.article.matched_holdings:
            relate(ticker, "holding")
    for member in cluster.members:
        for ticker in member.article.matched_tickers:
            relate(ticker, "mentioned")

    event = ExplanationEvent(
        id=cluster.cluster_id,
        title=primary.title,
        short_summary=primary.description,
        ticker_summary=", ".join(holdings) or None,
        impact_level=level,
        scope_type=primary.event_type or "market",
        relevance_type="holding" if holdings else "market",
        profile_tier=primary.profile_type_cached,
        raw_articles=[
            RawArticle(
                source=m.article.source_name,
                title=m.article.title,
                description=m.article.description,
                body=m.article.clean_text,
            )
            for m in cluster.members
        ],
    )

    return StoryGroupDraft(
        scope=SCOPE_TICKER if primary_ticker else SCOPE_GLOBAL,
        primary_ticker=primary_ticker,
        date_bucket=date_bucket(primary.published_at, now),
        group_title=primary.title,
        impact_level=level,
        confidence_level=confidence_level(cluster.size),
        model_version=model_version
        or (settings.openai_model if settings.openai_api_key else "heuristic"),
        pipeline_version=settings.pipeline_version,
        cluster_id=cluster.cluster_id,
        members=[(m.article.url, m.similarity) for m in cluster.members],
        related_tickers=related,
        event=event,
    )


def explanation_columns(explanation: dict[str, Any]) -> dict[str, Any]:
    """Map a six-part explanation onto story_group_explanations columns."""
    scenarios = [
        f"{s.get('scenario')} ({s.get('likelihood')}): watch for {s.get('whatConfirmsIt')}; "
        f"less likely if {s.get('whatMakesItUnlikely')}"
        for s in explanation.get("mostLikelyScenarios") or []
        if isinstance(s, dict)
    ]
    fallback = bool(explanation.get("fallback"))
    return {
        "what_happened": explanation.get("summary"),
        "why_it_happened": explanation.get("whyThisHappened"),
        "why_it_matters_now": explanation.get("whyItMattersForYou"),
        "what_to_watch_next": "\n".join(scenarios) or None,
        "what_this_does_not_mean": "\n".join(explanation.get("whatToKeepInMind") or []) or None,
        "sources_summary": explanation.get("sources") or [],
        "cause_confidence": "Low" if fallback else "Medium",
        "cause_reason": "fallback explanation" if fallback else "oracle explanation",
    }
