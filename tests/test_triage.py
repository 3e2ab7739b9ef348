"""Tests for title triage and the impact-lite process gate."""

from __future__ import annotations

from app.core.config import settings
from app.pipeline.models import Holding
from app.pipeline.status import ArticleStatus
from app.pipeline.triage import (
    TitleTriage,
    decide_impact_lite,
    hard_filter_reason,
    mentions_holding,
)

from tests.conftest import make_article


class TestHardFilter:
    """Tests for drop-without-scoring rules."""

    def test_short_title(self):
        """Titles under 10 characters are dropped."""
        assert hard_filter_reason(make_article(title="Apple up")).startswith("Title too short")

    def test_generic_pattern(self):
        """Roundup-style titles are dropped."""
        reason = hard_filter_reason(make_article(title="Morning Brief: what investors need to know"))
        assert reason.startswith("Generic title pattern")

    def test_sponsored_source(self):
        """Sponsored sources are dropped."""
        article = make_article(source_name="Sponsored Content Network")
        assert hard_filter_reason(article) == "Low-quality source: sponsored"

    def test_normal_title_passes(self):
        """A specific news title is not filtered."""
        assert hard_filter_reason(make_article()) is None


class TestImpactLite:
    """Tests for the pre-classification impact estimate."""

    def test_components_add_up(self):
        """Relevance, event, matches and source each contribute."""
        assert decide_impact_lite(3, "earnings", ["AAPL"], [], "Reuters") == 65
        assert decide_impact_lite(1, "other", [], [], None) == 10


class TestTitleTriage:
    """Tests for the triage stage handler."""

    def test_holding_news_advances(self, holdings):
        """A holding earnings story passes with its matches recorded."""
        outcome = TitleTriage(holdings).run(make_article())
        assert outcome.status == ArticleStatus.TITLE_FILTERED
        assert outcome.updates["title_relevance"] == 3
        assert outcome.updates["title_event_type"] == "earnings"
        assert outcome.updates["title_ticker_matches"] == ["AAPL"]
        assert outcome.updates["likely_impact"] == 65

    def test_irrelevant_title_discarded(self, holdings):
        """A title with no market signal is discarded."""
        article = make_article(
            title="Local bakery wins community award for best sourdough bread",
            description="A family bakery celebrated.",
            searched_by="MACRO",
        )
        outcome = TitleTriage(holdings).run(article)
        assert outcome.status == ArticleStatus.DISCARDED
        assert outcome.reason == "Irrelevant title"
        assert outcome.updates["likely_impact"] == 0

    def test_gate_depends_on_bucket(self, holdings):
        """The same weak story passes the holdings gate but not the macro gate."""
        weak = dict(
            title="Stocks drift sideways as investors await fresh signals",
            description=None,
            source_name="Some Blog",
        )
        triage = TitleTriage(holdings, gate_holdings=10, gate_macro=15)

        macro = triage.run(make_article(searched_by="MACRO", **weak))
        assert macro.status == ArticleStatus.DISCARDED
        assert macro.reason == "likely_impact 10 below gate 15"

        held = triage.run(make_article(searched_by="AAPL", **weak))
        assert held.status == ArticleStatus.TITLE_FILTERED

    def test_holding_tag_without_mention_is_demoted(self, holdings):
        """A holding-tagged story that never names a holding drops to relevance 1."""
        article = make_article(
            title="Chipmakers rally as semiconductor demand lifts shares",
            description=None,
            searched_by="NVDA",
        )
        updates = TitleTriage(holdings).score(article)
        assert updates["title_relevance"] == 1
        assert "holding not mentioned" in updates["title_reason_short"]

    def test_gates_follow_patched_settings(self, holdings, mocker):
        """Gate defaults are read from settings when the handler is built."""
        mocker.patch.object(settings, "process_gate_macro", 99)
        assert TitleTriage(holdings).gate_macro == 99
        assert TitleTriage(holdings, gate_macro=5).gate_macro == 5


class TestMentionsHolding:
    """Tests for the holding-mention check."""

    def test_single_letter_ticker_needs_whole_word(self):
        """Ticker F does not match inside other words."""
        ford = [Holding(ticker="F", label="Ford")]
        article = make_article(title="Fed signals rate cut as inflation falls", description=None, searched_by="F")
        assert not mentions_holding(article, ford)

    def test_whole_word_and_cashtag_match(self):
        """A standalone ticker or cashtag counts as a mention."""
        ford = [Holding(ticker="F", label="Ford")]
        plain = make_article(title="Shares of F climb after strong truck sales", searched_by="F")
        cashtag = make_article(title="$F climbs after strong truck sales", description=None, searched_by="F")
        assert mentions_holding(plain, ford)
        assert mentions_holding(cashtag, ford)

    def test_untagged_article_passes(self, holdings):
        """Macro and feed articles need no holding mention."""
        article = make_article(title="Oil slips as supply rises", searched_by="MACRO")
        assert mentions_holding(article, holdings)
