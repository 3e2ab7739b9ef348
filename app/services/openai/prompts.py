"""
System prompts and user-message builders for each oracle task.

The wording here is not load-bearing; the JSON shapes are, since the
schemas and validators in this package check them.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from enum import Enum

from app.services.openai.contexts import ClassificationContext, ExplanationEvent


MAX_ARTICLE_CHARS = 8000
MAX_BODY_CHARS = 1000
MAX_RAW_ARTICLES = 5

DATE_PATTERNS = (
    re.compile(
        r"\b(?:January|February|March|April|May|June|July|August|September|October|November|December)"
        r"\s+\d{1,2}[,\s]+\d{4}\b"
    ),
    re.compile(r"\b\d{1,2}/\d{1,2}/\d{4}\b"),
)


class TaskType(str, Enum):
    CLASSIFY = "classify"
    EXPLAIN = "explain"


INSTRUCTIONS: dict[TaskType, str] = {
    TaskType.CLASSIFY: """You are a financial news analyst that analyzes full article content.

Analyze the article and provide:
1. Event type: earnings, m&a, guidance, macro, regulation, product_tech, industry_trend, other
2. Impact score (0-100): how significant is this news for markets?
3. Sentiment (-1 to +1): negative to positive
4. Sentiment label: negative, neutral, or positive
5. Risk score (0-100): potential downside risk
6. Opportunity score (0-100): potential upside opportunity
7. Volatility score (0-100): how much volatility might this cause?
8. Matched tickers: stock tickers mentioned
9. Matched sectors: industry sectors mentioned

Respond with valid JSON in exactly this format:
{
  "event_type": "earnings",
  "impact_score": 0,
  "sentiment": 0.0,
  "sentiment_label": "neutral",
  "risk_score": 0,
  "opportunity_score": 0,
  "volatility_score": 0,
  "matched_tickers": ["TICKER"],
  "matched_sectors": ["sector"]
}""",

    TaskType.EXPLAIN: """You are a calm, plain-spoken financial explainer for people without a finance background.

Goal: help the reader understand what happened, whether it touches them, and what usually happens next.
The reader should finish calmer, not more alert.

{holdings}

Every explanation has six parts, in this order:
1. summary: 3-5 short sentences, no jargon, no interpretation.
2. whyItMattersForYou: who this affects and who it does not, tied to the holdings above.
3. whyThisHappened: the causal chain, terms defined inline.
4. mostLikelyScenarios: 2-3 items, each {{"scenario", "likelihood": "Low"|"Medium"|"High", "whatConfirmsIt", "whatMakesItUnlikely"}}. No percentages, no price targets.
5. whatToKeepInMind: 3-5 short guardrails against overreacting.
6. sources: at least one {{"name", "type": "Primary"|"Secondary", "reason"}}.

Rules:
- No buy/sell advice and no price targets.
- No urgency language ("breaking", "urgent", "must").
- Only mention tickers from the holdings list above.
- Short sentences.

Return ONLY valid JSON:
{{"explanations": [{{"classification": {{"eventType": "...", "timeHorizon": "immediate|short|medium|long", "marketAwareness": "high|medium|low", "action": "NO_ACTION|MONITOR|REVIEW"}}, "summary": "...", "whyItMattersForYou": "...", "whyThisHappened": "...", "mostLikelyScenarios": [], "whatToKeepInMind": [], "sources": []}}]}}

Return one explanation per event, in the order given.""",
}

RETRY_CORRECTION = (
    "CORRECTIONS NEEDED:\n"
    "1. You mentioned tickers that are not in the holdings list. Remove every ticker that is not listed.\n"
    "2. If there are holdings, name them in whyItMattersForYou.\n"
    "3. Explain every term for a non-finance reader.\n"
    "Return the same JSON schema with the corrected explanations."
)


def get_instructions(task: TaskType, holdings: list[str] | None = None) -> str:
    """System message for a task."""
    if task == TaskType.EXPLAIN:
        holdings_text = (
            f"User's holdings: {', '.join(holdings)}" if holdings else "User has NO holdings"
        )
        return INSTRUCTIONS[task].format(holdings=holdings_text)
    return INSTRUCTIONS[task]


def build_classification_prompt(context: ClassificationContext) -> str:
    text = context.clean_text
    if len(text) > MAX_ARTICLE_CHARS:
        text = text[:MAX_ARTICLE_CHARS] + "..."
    parts = [f"Article Title: {context.title}", "", "Article Content:", text]
    if context.searched_by:
        parts.append(
            f"\nThis article was found by searching for: {context.searched_by}. "
            f"Pay attention to how it affects {context.searched_by}."
        )
    parts.append("\nReturn ONLY valid JSON, no markdown formatting.")
    return "\n".join(parts)


def _dates_in(text: str) -> list[str]:
    found: list[str] = []
    for pattern in DATE_PATTERNS:
        found.extend(pattern.findall(text))
    return found[:3]


def _format_event(index: int, event: ExplanationEvent) -> str:
    raw = event.raw_articles[:MAX_RAW_ARTICLES]
    lines = [
        f"Event {index}:",
        f"  Event ID: {event.id}",
        f"  Title: {event.title or 'No title'}",
        f"  Short Summary: {event.short_summary or 'N/A'}",
        f"  Ticker Summary: {event.ticker_summary or 'N/A'}",
        f"  Impact Level: {event.impact_level}",
        f"  Scope Type: {event.scope_type}",
        f"  Relevance Type: {event.relevance_type or 'N/A'}",
        f"  Profile Tier: {event.profile_tier or 'N/A'}",
    ]
    dates = _dates_in(" ".join(f"{a.title or ''} {a.description or ''} {a.body or ''}" for a in raw))
    if dates:
        lines.append(f"  Important Dates Found in Article: {', '.join(dates)}")
    lines.append("  Raw Articles:")
    if not raw:
        lines.append("    No articles available")
    for n, article in enumerate(raw, start=1):
        lines.append(f"    Article {n}:")
        lines.append(f"      Source: {article.source or 'Unknown'}")
        lines.append(f"      Title: {article.title or 'No title'}")
        lines.append(f"      Description: {article.description or 'No description'}")
        if article.body:
            lines.append(f"      Body: {article.body[:MAX_BODY_CHARS]}...")
    return "\n".join(lines)


def build_explanation_prompt(events: list[ExplanationEvent], now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    today = now.strftime("%A, %B %d, %Y")
    body = "\n\n---\n\n".join(_format_event(i, e) for i, e in enumerate(events, start=1))
    return (
        f"CURRENT DATE: {today}\n\n"
        f"Explain these {len(events)} event(s) for a non-finance reader. "
        f"Only refer to future dates after {today}.\n\n{body}"
    )
