"""Cheap title triage and the impact-lite process gate.

Runs entirely locally on title, description and source. It decides which
articles are worth a download and an oracle call, so it errs on the side of
letting borderline holdings news through.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from app.core.config import settings
from app.core.logging import get_logger

from .models import Article, Holding, StageOutcome
from .status import ArticleStatus, Stage

logger = get_logger("pipeline.triage")


MIN_TITLE_LENGTH = 10

GENERIC_TITLE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bmorning brief\b",
        r"\bmarket wrap\b",
        r"\blive blog\b",
        r"\btop \d+ (?:stock )?moves\b",
        r"\bdaily roundup\b",
        r"\bweekend read\b",
        r"\bwhat to watch\b",
        r"\bstock market today\b",
        r"\bpre-market\b",
        r"\bafter hours\b",
        r"\bticker tape\b",
        r"\bnewsletter\b",
        r"\bsubscribe\b",
        r"\bsign up\b",
        r"\bclick here\b",
        r"\bwatch now\b",
        r"^video:",
        r"^podcast:",
        r"\bphoto gallery\b",
        r"\bslideshow\b",
        r"\b\d+ photos\b",
    )
]

LOW_QUALITY_SOURCE_MARKERS = ("sponsored", "advertisement", "promoted", "partner content")

EVENT_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("earnings", ("earnings", "quarterly results", "eps", "revenue", "profit", "q1", "q2", "q3", "q4")),
    ("m&a", ("merger", "acquire", "acquires", "acquisition", "takeover", "buyout")),
    ("guidance", ("guidance", "outlook", "forecast")),
    (
        "macro",
        (
            "inflation",
            "cpi",
            "fed",
            "federal reserve",
            "interest rate",
            "rate decision",
            "bond yields",
            "treasury",
            "recession",
            "gdp",
            "unemployment",
            "jobs report",
            "central bank",
            "oil prices",
        ),
    ),
    (
        "regulation",
        ("sec", "regulator", "regulators", "antitrust", "lawsuit", "probe", "investigation", "sanctions", "tariff", "tariffs", "ban"),
    ),
    ("product_tech", ("launch", "launches", "unveils", "chip", "chips", "product", "patent", "ai model")),
    ("industry_trend", ("industry", "sector", "supply chain", "demand", "market share")),
]

SECTOR_KEYWORDS: dict[str, tuple[str, ...]] = {
    "technology": ("tech", "software", "cloud", "artificial intelligence"),
    "semiconductors": ("chip", "chips", "semiconductor", "semiconductors", "foundry"),
    "energy": ("oil", "gas", "energy", "opec", "crude"),
    "financials": ("bank", "banks", "banking", "lender", "credit"),
    "healthcare": ("pharma", "biotech", "drug", "fda", "healthcare"),
    "real_estate": ("housing", "mortgage", "real estate", "reit"),
    "consumer": ("retail", "consumer", "retailer"),
    "autos": ("automaker", "ev", "electric vehicle", "autos"),
    "crypto": ("bitcoin", "crypto", "ethereum", "stablecoin"),
}

FINANCE_TERMS = (
    "stock",
    "stocks",
    "shares",
    "market",
    "markets",
    "investors",
    "economy",
    "rates",
    "prices",
    "bonds",
    "yields",
)

HIGH_IMPACT_EVENTS = frozenset(
    {
        "earnings",
        "merger",
        "acquisition",
        "m&a",
        "ipo",
        "bankruptcy",
        "lawsuit",
        "regulation",
        "macro",
        "guidance",
        "product_tech",
        "industry_trend",
    }
)

REPUTABLE_SOURCES = ("reuters", "bloomberg", "wsj", "wall street journal", "financial times", "cnbc", "marketwatch")

UPPER_TICKER = re.compile(r"\b[A-Z]{2,5}\b")


def _contains(text: str, phrase: str) -> bool:
    return re.search(rf"\b{re.escape(phrase)}\b", text) is not None


def hard_filter_reason(article: Article) -> str | None:
    """Reason to drop ``article`` without scoring it, or None."""
    title = (article.title or "").strip()
    if len(title) < MIN_TITLE_LENGTH:
        return f"Title too short ({len(title)} chars)"
    for pattern in GENERIC_TITLE_PATTERNS:
        if pattern.search(title):
            return f"Generic title pattern: {pattern.pattern}"
    significant = [w for w in title.split() if len(w) > 2]
    if len(significant) <= 2 and not UPPER_TICKER.search(title):
        return "Title too vague"
    source = (article.source_name or "").lower()
    for marker in LOW_QUALITY_SOURCE_MARKERS:
        if marker in source:
            return f"Low-quality source: {marker}"
    return None


def detect_event_type(text: str) -> str:
    lowered = text.lower()
    for event_type, keywords in EVENT_KEYWORDS:
        if any(_contains(lowered, keyword) for keyword in keywords):
            return event_type
    return "other"


def match_tickers(text: str, holdings: list[Holding]) -> list[str]:
    """Holdings named in ``text`` by ticker, cashtag or label."""
    matches: list[str] = []
    lowered = text.lower()
    for holding in holdings:
        ticker = holding.ticker.upper()
        found = _contains(text, ticker) or f"${ticker}" in text
        label = (holding.label or "").strip()
        if not found and label and label.upper() != ticker and len(label) > 2:
            found = _contains(lowered, label.lower())
        if found and ticker not in matches:
            matches.append(ticker)
    return matches


def match_sectors(text: str) -> list[str]:
    lowered = text.lower()
    return [
        sector
        for sector, keywords in SECTOR_KEYWORDS.items()
        if any(_contains(lowered, keyword) for keyword in keywords)
    ]


def mentions_holding(article: Article, holdings: list[Holding]) -> bool:
    """Holding-tagged articles must name a tracked ticker or label."""
    tags = [tag for tag in article.tags if tag not in ("MACRO", "FEED")]
    if not tags:
        return True
    text = f"{article.title or ''} {article.description or ''}".upper()
    candidates = set(tags)
    for holding in holdings:
        candidates.add(holding.ticker.upper())
        if holding.label and len(holding.label) > 2:
            candidates.add(holding.label.upper())
    return any(_contains(text, candidate.upper()) for candidate in candidates)


def decide_impact_lite(
    relevance: int,
    event_type: str,
    tickers: list[str],
    sectors: list[str],
    source_name: str | None,
) -> int:
    """Pre-classification impact estimate, 0-100."""
    score = relevance * 10
    if event_type in HIGH_IMPACT_EVENTS:
        score += 20
    if tickers or sectors:
        score += 10
    source = (source_name or "").lower()
    if any(name in source for name in REPUTABLE_SOURCES):
        score += 5
    return min(score, 100)


@dataclass
class TitleTriage:
    """Triage stage handler."""

    holdings: list[Holding]
    gate_holdings: int | None = None
    gate_macro: int | None = None

    def __post_init__(self):
        if self.gate_holdings is None:
            self.gate_holdings = settings.process_gate_holdings
        if self.gate_macro is None:
            self.gate_macro = settings.process_gate_macro

    def score(self, article: Article) -> dict:
        text = f"{article.title or ''} {article.description or ''}"
        event_type = detect_event_type(text)
        tickers = match_tickers(text, self.holdings)
        sectors = match_sectors(text)
        lowered = text.lower()

        relevance = 0
        if tickers:
            relevance += 2
        if event_type != "other":
            relevance += 1
        if sectors or any(_contains(lowered, term) for term in FINANCE_TERMS):
            relevance += 1
        relevance = min(relevance, 3)

        reasons = []
        if tickers:
            reasons.append(f"mentions {', '.join(tickers)}")
        if event_type != "other":
            reasons.append(f"{event_type} event")
        if sectors:
            reasons.append(f"sectors {', '.join(sectors)}")

        if relevance > 1 and not mentions_holding(article, self.holdings):
            relevance = 1
            reasons.append("holding not mentioned")

        return {
            "title_relevance": relevance,
            "title_event_type": event_type,
            "title_reason_short": "; ".join(reasons) or "no market signal",
            "title_ticker_matches": tickers,
            "title_sector_matches": sectors,
        }

    def run(self, article: Article) -> StageOutcome:
        reason = hard_filter_reason(article)
        if reason:
            return StageOutcome(
                stage=Stage.TRIAGE,
                url=article.url,
                updates={"title_relevance": 0, "title_reason_short": reason, "likely_impact": 0},
                status=ArticleStatus.DISCARDED,
                reason=reason,
            )

        try:
            updates = self.score(article)
        except Exception:
            logger.exception(f"Triage failed for {article.url}, letting it through")
            return StageOutcome(
                stage=Stage.TRIAGE,
                url=article.url,
                updates={
                    "title_relevance": 2,
                    "title_event_type": "other",
                    "title_reason_short": "triage error",
                    "likely_impact": 20,
                },
                status=ArticleStatus.TITLE_FILTERED,
            )

        relevance = updates["title_relevance"]
        if relevance == 0:
            updates["likely_impact"] = 0
            return StageOutcome(
                stage=Stage.TRIAGE,
                url=article.url,
                updates=updates,
                status=ArticleStatus.DISCARDED,
                reason="Irrelevant title",
            )

        likely_impact = decide_impact_lite(
            relevance,
            updates["title_event_type"],
            updates["title_ticker_matches"],
            updates["title_sector_matches"],
            article.source_name,
        )
        updates["likely_impact"] = likely_impact
        gate = self.gate_macro if article.is_macro_bucket else self.gate_holdings
        if likely_impact < gate:
            return StageOutcome(
                stage=Stage.TRIAGE,
                url=article.url,
                updates=updates,
                status=ArticleStatus.DISCARDED,
                reason=f"likely_impact {likely_impact} below gate {gate}",
            )
        return StageOutcome(
            stage=Stage.TRIAGE,
            url=article.url,
            updates=updates,
            status=ArticleStatus.TITLE_FILTERED,
        )
