"""Personalization cost gate and profile-weighted scoring.

Low-impact articles take the cheap path: a fixed fraction of impact, no
holding analysis. Everything else gets holding relevance blended with impact
by profile. Scores are cached per (url, profile) both on the row itself and
in an injected cache.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Hashable, Optional, Protocol

from app.core.config import settings
from app.core.logging import get_logger

from .models import Article, Holding, StageOutcome
from .status import ArticleStatus, Stage

logger = get_logger("pipeline.personalize")


# (holding relevance weight, impact weight)
PROFILE_WEIGHTS: dict[str, tuple[float, float]] = {
    "focus": (1.2, 0.3),
    "balanced": (0.6, 0.4),
    "broad": (0.4, 0.6),
}

SYSTEMIC_EVENTS = frozenset({"macro", "regulation"})


class ScoreCache(Protocol):
    def get(self, key: Hashable) -> Optional[Any]: ...

    def set(self, key: Hashable, value: Any) -> None: ...


@dataclass
class PersonalizationResult:
    score: int
    profile: str
    raw_score: float = 0.0
    matched_holdings: list[str] = field(default_factory=list)
    holding_relevance: int | None = None
    exposure_level: str = "low"
    reduced: bool = False
    cache_hit: bool = False

    def columns(self) -> dict[str, Any]:
        return {
            "profile_adjusted_score": self.score,
            "profile_type_cached": self.profile,
            "matched_holdings": list(self.matched_holdings),
            "holding_relevance_score": self.holding_relevance,
            "exposure_level": self.exposure_level,
        }


def exposure_level(event_type: str | None, matched: int) -> str:
    systemic = event_type in SYSTEMIC_EVENTS
    if systemic or matched >= 3:
        return "high"
    if matched == 2:
        return "moderate"
    return "low"


class Personalizer:
    """Personalize stage handler for one user's holdings and profile."""

    def __init__(
        self,
        holdings: list[Holding],
        profile: str | None = None,
        cache: ScoreCache | None = None,
        impact_threshold: int | None = None,
        reduced_multiplier: float | None = None,
        min_score: int | None = None,
    ):
        self.holdings = holdings
        self.profile = profile or settings.default_profile
        self.cache = cache
        self.impact_threshold = (
            settings.impact_threshold if impact_threshold is None else impact_threshold
        )
        self.reduced_multiplier = (
            settings.reduced_score_multiplier
            if reduced_multiplier is None
            else reduced_multiplier
        )
        self.min_score = settings.min_profile_score if min_score is None else min_score

    def matched_holdings(self, article: Article) -> list[str]:
        mentioned = {t.upper() for t in article.matched_tickers} | {
            t.upper() for t in article.title_ticker_matches
        }
        return [h.ticker.upper() for h in self.holdings if h.ticker.upper() in mentioned]

    def holding_relevance(self, matches: int) -> int:
        if matches == 0:
            return settings.holding_base_score
        boosted = (
            settings.holding_base_score
            + settings.holding_match_bonus
            + settings.holding_per_match * matches
        )
        return min(settings.holding_max_score, boosted)

    def _compute(self, article: Article, profile: str) -> PersonalizationResult:
        impact = article.impact_score or 0
        matched = self.matched_holdings(article)
        exposure = exposure_level(article.event_type, len(matched))

        if impact < self.impact_threshold:
            raw = min(100.0, impact * self.reduced_multiplier)
            return PersonalizationResult(
                score=round(raw),
                raw_score=raw,
                profile=profile,
                matched_holdings=matched,
                exposure_level=exposure,
                reduced=True,
            )

        relevance = self.holding_relevance(len(matched))
        holding_weight, impact_weight = PROFILE_WEIGHTS[profile]
        raw = min(100.0, relevance * holding_weight + impact * impact_weight)
        return PersonalizationResult(
            score=round(raw),
            raw_score=raw,
            profile=profile,
            matched_holdings=matched,
            holding_relevance=relevance,
            exposure_level=exposure,
        )

    def score(self, article: Article, profile: str | None = None) -> PersonalizationResult:
        """Profile-adjusted score for ``article``, from cache when possible."""
        profile = profile or self.profile
        if profile not in PROFILE_WEIGHTS:
            raise ValueError(f"Unknown profile: {profile}")

        if article.profile_type_cached == profile and article.profile_adjusted_score is not None:
            return PersonalizationResult(
                score=article.profile_adjusted_score,
                raw_score=float(article.profile_adjusted_score),
                profile=profile,
                matched_holdings=list(article.matched_holdings),
                holding_relevance=article.holding_relevance_score,
                exposure_level=article.exposure_level or "low",
                cache_hit=True,
            )

        key = (article.url, profile)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return PersonalizationResult(**{**cached, "cache_hit": True})

        result = self._compute(article, profile)
        if self.cache is not None:
            self.cache.set(key, asdict(result))
        return result

    def run(self, article: Article) -> StageOutcome:
        result = self.score(article)
        # the gate compares the unrounded score
        if result.raw_score >= self.min_score:
            return StageOutcome(
                stage=Stage.PERSONALIZE,
                url=article.url,
                updates=result.columns(),
                status=ArticleStatus.PERSONALIZED,
            )
        path = "reduced" if result.reduced else "full"
        return StageOutcome(
            stage=Stage.PERSONALIZE,
            url=article.url,
            updates=result.columns(),
            status=ArticleStatus.DISCARDED,
            reason=f"profile score {result.raw_score:g} below {self.min_score} ({path} path)",
        )
