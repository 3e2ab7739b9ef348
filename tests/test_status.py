"""Tests for the article status machine and outcome application."""

from __future__ import annotations

import pytest

from app.core.exceptions import ValidationError
from app.pipeline.models import StageOutcome
from app.pipeline.status import ArticleStatus, Stage, can_transition, get_rule
from app.pipeline.transitions import apply_outcome, outcome_values

from tests.conftest import BASE_TIME, make_article


class TestCanTransition:
    """Tests for status monotonicity."""

    def test_forward_moves_allowed(self):
        """Each state can move to any later state."""
        assert can_transition(ArticleStatus.PENDING, ArticleStatus.TITLE_FILTERED)
        assert can_transition(ArticleStatus.TITLE_FILTERED, ArticleStatus.CONTENT_FETCHED)
        assert can_transition(ArticleStatus.PERSONALIZED, ArticleStatus.RANKED)

    def test_backward_moves_rejected(self):
        """No state moves back towards pending."""
        assert not can_transition(ArticleStatus.RANKED, ArticleStatus.PERSONALIZED)
        assert not can_transition(ArticleStatus.CONTENT_FETCHED, ArticleStatus.PENDING)

    def test_discarded_is_terminal(self):
        """A discarded row never moves again."""
        for status in ArticleStatus:
            assert not can_transition(ArticleStatus.DISCARDED, status)

    def test_discard_only_before_personalization(self):
        """Personalized and ranked rows are not discarded."""
        assert can_transition(ArticleStatus.LLM_PROCESSED, ArticleStatus.DISCARDED)
        assert not can_transition(ArticleStatus.RANKED, ArticleStatus.DISCARDED)


class TestStageRules:
    """Tests for the stage eligibility table."""

    def test_eligible_needs_status_and_null_output(self):
        """A row is eligible only in the input status with the output field unset."""
        rule = get_rule(Stage.TRIAGE)
        assert rule.is_eligible(make_article())
        assert not rule.is_eligible(make_article(title_relevance=2))
        assert not rule.is_eligible(make_article(status=ArticleStatus.TITLE_FILTERED))

    def test_rank_orders_by_profile_score(self):
        """Ranking picks the highest profile scores first."""
        assert get_rule(Stage.RANK).order_by == "profile_adjusted_score"
        assert get_rule(Stage.FETCH).order_by == "published_at"


class TestApplyOutcome:
    """Tests for applying stage outcomes to rows."""

    def test_advance_stamps_timestamp_once(self):
        """Entering a state stamps its timestamp column."""
        article = make_article()
        outcome = StageOutcome(
            stage=Stage.TRIAGE,
            url=article.url,
            updates={"title_relevance": 2},
            status=ArticleStatus.TITLE_FILTERED,
        )
        updated = apply_outcome(article, outcome, now=BASE_TIME)
        assert updated.status == ArticleStatus.TITLE_FILTERED
        assert updated.title_filtered_at == BASE_TIME
        assert updated.title_relevance == 2

    def test_stale_row_is_left_alone(self):
        """An outcome for a row that already left the input status returns None."""
        article = make_article(status=ArticleStatus.TITLE_FILTERED, title_relevance=2)
        outcome = StageOutcome(
            stage=Stage.TRIAGE, url=article.url, status=ArticleStatus.DISCARDED
        )
        assert apply_outcome(article, outcome) is None

    def test_discard_records_reason(self):
        """Discarding writes the reason to status_reason."""
        article = make_article()
        outcome = StageOutcome(
            stage=Stage.TRIAGE,
            url=article.url,
            status=ArticleStatus.DISCARDED,
            reason="Irrelevant title",
        )
        updated = apply_outcome(article, outcome)
        assert updated.status == ArticleStatus.DISCARDED
        assert updated.status_reason == "Irrelevant title"
        assert updated.discarded_at is not None

    def test_retry_outcome_keeps_status(self):
        """An outcome without a status only writes its updates."""
        article = make_article(status=ArticleStatus.TITLE_FILTERED, title_relevance=2)
        outcome = StageOutcome(stage=Stage.FETCH, url=article.url, updates={"fetch_attempts": 1})
        updated = apply_outcome(article, outcome)
        assert updated.status == ArticleStatus.TITLE_FILTERED
        assert updated.fetch_attempts == 1

    def test_illegal_transition_raises(self):
        """Moving a ranked row back to personalized is rejected."""
        article = make_article(status=ArticleStatus.RANKED)
        outcome = StageOutcome(
            stage=Stage.RANK, url=article.url, status=ArticleStatus.PERSONALIZED
        )
        with pytest.raises(ValidationError):
            outcome_values(article, outcome)
