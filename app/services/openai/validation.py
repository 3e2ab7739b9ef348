"""
Explanation validation.

Checks structure, tone and ticker hygiene of oracle explanations. Anything
that fails here is replaced by the deterministic fallback; invalid tickers
alone earn the batch one corrective retry first.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from app.core.logging import get_logger

logger = get_logger("openai.validation")


TICKER_PATTERN = re.compile(r"\b[A-Z]{2,5}\b")

# Upper-case tokens that look like tickers but are not
COMMON_WORDS = frozenset({
    "CEO", "CFO", "CTO", "IPO", "SEC", "FDA", "USA", "USD", "EUR", "GBP",
    "ETF", "NYSE", "API", "AI", "IT", "TV", "UK", "US", "EU", "GDP",
    "CPI", "FED", "NASDAQ", "DOW", "LLC", "INC", "LTD", "CORP",
    "THE", "AND", "FOR", "ARE", "BUT", "NOT", "YOU", "ALL", "CAN", "HER",
    "WAS", "ONE", "OUR", "OUT", "DAY", "GET", "HAS", "HIM", "HIS", "HOW",
    "ITS", "MAY", "NEW", "NOW", "OLD", "SEE", "TWO", "WAY", "WHO", "BOY",
    "DID", "DOWN", "END", "GOT", "HAD", "HOT", "LET", "MAN", "OFF", "OWN",
    "PUT", "RAN", "RUN", "SAW", "SAY", "SHE", "TOP", "TRY", "USE", "WON", "YES",
})

URGENCY_WORDS = ("breaking", "urgent", "must", "immediately", "critical", "emergency")

LIKELIHOODS = ("Low", "Medium", "High")
SOURCE_TYPES = ("Primary", "Secondary")


@dataclass
class ExplanationValidation:
    errors: list[str] = field(default_factory=list)
    invalid_tickers: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors and not self.invalid_tickers


def extract_tickers(text: str | None) -> list[str]:
    """Ticker-shaped tokens in ``text`` that are not common words."""
    if not text or not isinstance(text, str):
        return []
    return [t for t in TICKER_PATTERN.findall(text) if t not in COMMON_WORDS]


def _prose(explanation: dict[str, Any]) -> str:
    keep_in_mind = explanation.get("whatToKeepInMind")
    parts = [
        explanation.get("summary"),
        explanation.get("whyItMattersForYou"),
        explanation.get("whyThisHappened"),
        *(keep_in_mind if isinstance(keep_in_mind, list) else []),
    ]
    return " ".join(str(p) for p in parts if p)


def validate_explanation(explanation: Any, holdings: list[str]) -> ExplanationValidation:
    result = ExplanationValidation()
    if not isinstance(explanation, dict):
        result.errors.append("Explanation is not an object")
        return result

    if not explanation.get("classification"):
        result.errors.append("Missing classification")
    if not isinstance(explanation.get("summary"), str) or not explanation.get("summary"):
        result.errors.append("Missing or invalid summary")
    if not explanation.get("whyItMattersForYou"):
        result.errors.append("Missing whyItMattersForYou")
    if not explanation.get("whyThisHappened"):
        result.errors.append("Missing whyThisHappened")

    scenarios = explanation.get("mostLikelyScenarios")
    if not isinstance(scenarios, list):
        result.errors.append("Missing or invalid mostLikelyScenarios")
    else:
        if not 2 <= len(scenarios) <= 3:
            result.errors.append(f"mostLikelyScenarios must have 2-3 items (has {len(scenarios)})")
        for i, scenario in enumerate(scenarios, start=1):
            if not isinstance(scenario, dict):
                result.errors.append(f"Scenario {i}: not an object")
                continue
            if not scenario.get("scenario"):
                result.errors.append(f"Scenario {i}: missing scenario description")
            if scenario.get("likelihood") not in LIKELIHOODS:
                result.errors.append(f"Scenario {i}: invalid likelihood (must be Low/Medium/High)")
            if not scenario.get("whatConfirmsIt"):
                result.errors.append(f"Scenario {i}: missing whatConfirmsIt")
            if not scenario.get("whatMakesItUnlikely"):
                result.errors.append(f"Scenario {i}: missing whatMakesItUnlikely")

    keep_in_mind = explanation.get("whatToKeepInMind")
    if not isinstance(keep_in_mind, list):
        result.errors.append("Missing or invalid whatToKeepInMind")
    elif not 3 <= len(keep_in_mind) <= 5:
        result.warnings.append(f"whatToKeepInMind should have 3-5 items (has {len(keep_in_mind)})")

    sources = explanation.get("sources")
    if not isinstance(sources, list):
        result.errors.append("Missing or invalid sources")
    else:
        if len(sources) < 1:
            result.errors.append("Must include at least 1 source")
        for i, source in enumerate(sources, start=1):
            if not isinstance(source, dict):
                result.errors.append(f"Source {i}: not an object")
                continue
            if not source.get("name"):
                result.errors.append(f"Source {i}: missing name")
            if source.get("type") not in SOURCE_TYPES:
                result.errors.append(f"Source {i}: invalid type (must be Primary/Secondary)")
            if not source.get("reason"):
                result.errors.append(f"Source {i}: missing reason")

    text = _prose(explanation)
    lowered = text.lower()
    for word in URGENCY_WORDS:
        if word in lowered:
            result.errors.append(f'Urgency language detected: "{word}"')

    allowed = {h.upper() for h in holdings}
    for ticker in extract_tickers(text):
        if ticker not in allowed and ticker not in result.invalid_tickers:
            result.invalid_tickers.append(ticker)

    return result
