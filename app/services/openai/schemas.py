"""
Pydantic models for oracle outputs.

ClassificationOutput coerces whatever the model returns into bounded numbers
and upper-cased tickers. The explanation models describe the six-part
explanation; structural checks beyond types live in validation.py.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


EVENT_TYPES = (
    "earnings",
    "m&a",
    "guidance",
    "macro",
    "regulation",
    "product_tech",
    "industry_trend",
    "other",
)


def _clamp_int(value: Any, low: int = 0, high: int = 100) -> int:
    try:
        number = round(float(value))
    except (TypeError, ValueError):
        return low
    return max(low, min(high, number))


# =============================================================================
# Classification
# =============================================================================

class ClassificationOutput(BaseModel):
    """Structured read of a full article."""

    model_config = ConfigDict(extra="ignore")

    event_type: str = "other"
    impact_score: int = 0
    sentiment: float = 0.0
    sentiment_label: Literal["negative", "neutral", "positive"] = "neutral"
    risk_score: int = 0
    opportunity_score: int = 0
    volatility_score: int = 0
    matched_tickers: list[str] = Field(default_factory=list)
    matched_sectors: list[str] = Field(default_factory=list)

    @field_validator("event_type", mode="before")
    @classmethod
    def normalize_event_type(cls, v):
        value = str(v or "other").strip().lower()
        return value if value in EVENT_TYPES else "other"

    @field_validator("impact_score", "risk_score", "opportunity_score", "volatility_score", mode="before")
    @classmethod
    def clamp_score(cls, v):
        return _clamp_int(v)

    @field_validator("sentiment", mode="before")
    @classmethod
    def clamp_sentiment(cls, v):
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.0
        return max(-1.0, min(1.0, value))

    @field_validator("sentiment_label", mode="before")
    @classmethod
    def normalize_label(cls, v):
        value = str(v or "neutral").strip().lower()
        return value if value in ("negative", "neutral", "positive") else "neutral"

    @field_validator("matched_tickers", mode="before")
    @classmethod
    def upper_tickers(cls, v):
        if not isinstance(v, list):
            return []
        tickers: list[str] = []
        for item in v:
            ticker = str(item).strip().upper()
            if ticker and ticker not in tickers:
                tickers.append(ticker)
        return tickers

    @field_validator("matched_sectors", mode="before")
    @classmethod
    def clean_sectors(cls, v):
        if not isinstance(v, list):
            return []
        return [str(item).strip() for item in v if str(item).strip()]

    def columns(self) -> dict[str, Any]:
        return self.model_dump()


# =============================================================================
# Explanations
# =============================================================================

class ExplanationClassification(BaseModel):
    model_config = ConfigDict(extra="allow")

    eventType: str = "market"
    timeHorizon: str = "medium"
    marketAwareness: str = "medium"
    action: str = "NO_ACTION"


class Scenario(BaseModel):
    scenario: str
    likelihood: Literal["Low", "Medium", "High"]
    whatConfirmsIt: str
    whatMakesItUnlikely: str


class SourceRef(BaseModel):
    name: str
    type: Literal["Primary", "Secondary"]
    reason: str


class Explanation(BaseModel):
    """Six-part explanation for one event."""

    model_config = ConfigDict(extra="ignore")

    classification: ExplanationClassification
    summary: str
    whyItMattersForYou: str
    whyThisHappened: str
    mostLikelyScenarios: list[Scenario]
    whatToKeepInMind: list[str]
    sources: list[SourceRef]
