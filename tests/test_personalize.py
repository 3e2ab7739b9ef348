"""Tests for the personalization cost gate and score caching."""

from __future__ import annotations

import pytest

from app.cache.memory import MemoryTTLCache
from app.pipeline.personalize import Personalizer, exposure_level
from app.pipeline.status import ArticleStatus

from tests.conftest import make_article


def processed(**overrides):
    values = dict(
        status=ArticleStatus.LLM_PROCESSED,
        event_type="earnings",
        impact_score=80,
        matched_tickers=["AAPL"],
    )
    values.update(overrides)
    return make_article(**values)


def personalizer(holdings, profile="balanced", cache=None):
    return Personalizer(
        holdings, profile, cache, impact_threshold=40, reduced_multiplier=0.6, min_score=20
    )


class TestExposureLevel:
    """Tests for exposure classification."""

    def test_systemic_events_are_high(self):
        """Macro and regulation stories are high exposure regardless of matches."""
        assert exposure_level("macro", 0) == "high"
        assert exposure_level("regulation", 1) == "high"

    def test_by_match_count(self):
        """Three or more matches is high, two moderate, one or none low."""
        assert exposure_level("earnings", 3) == "high"
        assert exposure_level("earnings", 2) == "moderate"
        assert exposure_level("earnings", 1) == "low"
        assert exposure_level("earnings", 0) == "low"


class TestPersonalizer:
    """Tests for the personalize stage handler."""

    def test_low_impact_takes_reduced_path_and_is_discarded(self, holdings):
        """Impact 10 under threshold 40 scores 6, below the minimum 20."""
        outcome = personalizer(holdings).run(processed(impact_score=10))
        assert outcome.status == ArticleStatus.DISCARDED
        assert outcome.updates["profile_adjusted_score"] == 6
        assert outcome.updates["holding_relevance_score"] is None
        assert "reduced path" in outcome.reason

    def test_gate_uses_unrounded_reduced_score(self, holdings):
        """Impact 33 scores 19.8, which stays below 20 even though it rounds to 20."""
        outcome = personalizer(holdings).run(processed(impact_score=33))
        assert outcome.status == ArticleStatus.DISCARDED
        assert outcome.updates["profile_adjusted_score"] == 20
        assert "19.8" in outcome.reason

    def test_reduced_score_just_above_minimum_passes(self, holdings):
        """Impact 34 scores 20.4 and clears the minimum."""
        outcome = personalizer(holdings).run(processed(impact_score=34))
        assert outcome.status == ArticleStatus.PERSONALIZED
        assert outcome.updates["profile_adjusted_score"] == 20

    def test_full_path_gate_uses_unrounded_blend(self, holdings):
        """A broad blend of 32.6 misses a minimum of 33 although it rounds to 33."""
        scorer = Personalizer(
            holdings, "broad", impact_threshold=40, reduced_multiplier=0.6, min_score=33
        )
        below = processed(matched_tickers=[], impact_score=41)
        above = processed(matched_tickers=[], impact_score=42)
        assert scorer.score(below).raw_score == pytest.approx(32.6)
        assert scorer.run(below).status == ArticleStatus.DISCARDED
        assert scorer.run(above).status == ArticleStatus.PERSONALIZED

    def test_full_path_balanced(self, holdings):
        """One matched holding: relevance 35 blended with impact 80."""
        outcome = personalizer(holdings).run(processed())
        assert outcome.status == ArticleStatus.PERSONALIZED
        assert outcome.updates["holding_relevance_score"] == 35
        assert outcome.updates["profile_adjusted_score"] == 53
        assert outcome.updates["matched_holdings"] == ["AAPL"]
        assert outcome.updates["profile_type_cached"] == "balanced"

    @pytest.mark.parametrize("profile,expected", [("focus", 66), ("broad", 62)])
    def test_profile_weights(self, holdings, profile, expected):
        """Each profile blends relevance and impact with its own weights."""
        assert personalizer(holdings, profile).score(processed()).score == expected

    def test_no_match_uses_base_relevance(self, holdings):
        """Without matched holdings relevance is the base 20."""
        result = personalizer(holdings).score(processed(matched_tickers=[], impact_score=50))
        assert result.holding_relevance == 20
        assert result.score == 32

    def test_relevance_capped(self):
        """Many matches never push relevance past 45."""
        from app.pipeline.models import Holding

        many = [Holding(ticker=t) for t in ("AAPL", "MSFT", "NVDA", "AMZN")]
        article = processed(matched_tickers=["AAPL", "MSFT", "NVDA", "AMZN"])
        result = personalizer(many).score(article)
        assert result.holding_relevance == 45
        assert result.exposure_level == "high"

    def test_unknown_profile_rejected(self, holdings):
        """Only focus, balanced and broad are accepted."""
        with pytest.raises(ValueError):
            personalizer(holdings).score(processed(), "aggressive")


class TestScoreCache:
    """Tests for (url, profile) score caching."""

    def test_same_profile_hits_cache(self, holdings):
        """A second request for the same url and profile is a cache hit."""
        cache = MemoryTTLCache(ttl=60)
        scorer = personalizer(holdings, cache=cache)
        first = scorer.score(processed())
        second = scorer.score(processed())
        assert not first.cache_hit
        assert second.cache_hit
        assert second.score == first.score

    def test_different_profile_recomputes(self, holdings):
        """Switching profile forces a fresh computation."""
        cache = MemoryTTLCache(ttl=60)
        scorer = personalizer(holdings, cache=cache)
        scorer.score(processed(), "balanced")
        focus = scorer.score(processed(), "focus")
        assert not focus.cache_hit
        assert focus.score == 66

    def test_row_cache_used(self, holdings):
        """A row already scored for the profile returns its stored score."""
        article = processed(profile_type_cached="balanced", profile_adjusted_score=41)
        result = personalizer(holdings).score(article, "balanced")
        assert result.cache_hit
        assert result.score == 41

    def test_expired_entry_recomputed(self, holdings):
        """An entry past its TTL is recomputed."""
        now = [0.0]
        cache = MemoryTTLCache(ttl=10, clock=lambda: now[0])
        scorer = personalizer(holdings, cache=cache)
        scorer.score(processed())
        now[0] = 11.0
        assert not scorer.score(processed()).cache_hit
