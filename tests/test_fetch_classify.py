"""Tests for the fetch and classify stages."""

from __future__ import annotations

import pytest

from app.pipeline.classify import ClassificationStage, heuristic_classification
from app.pipeline.fetch import ContentFetchStage
from app.pipeline.status import ArticleStatus
from app.services.news.fetcher import extract_content, is_boilerplate
from app.services.openai.schemas import ClassificationOutput

from tests.conftest import LONG_TEXT, FakeFetcher, make_article


def filtered(**overrides):
    values = dict(status=ArticleStatus.TITLE_FILTERED, title_relevance=3, likely_impact=65)
    values.update(overrides)
    return make_article(**values)


def fetched(**overrides):
    values = dict(
        status=ArticleStatus.CONTENT_FETCHED,
        title_relevance=3,
        title_event_type="earnings",
        title_ticker_matches=["AAPL"],
        likely_impact=65,
        clean_text=LONG_TEXT,
        content_length=len(LONG_TEXT),
    )
    values.update(overrides)
    return make_article(**values)


class FakeClassifier:
    def __init__(self, output=None, error=None, available=True):
        self.output = output
        self.error = error
        self._available = available
        self.calls = 0

    @property
    def available(self) -> bool:
        return self._available

    async def classify(self, context):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.output


class TestExtractContent:
    """Tests for HTML text extraction."""

    def test_paragraphs_and_canonical(self):
        """Article paragraphs are kept, scripts dropped, canonical link read."""
        html = (
            '<html><head><link rel="canonical" href="https://reuters.com/a"></head>'
            "<body><nav>Menu</nav><article><p>First paragraph.</p><script>x()</script>"
            "<p>Second paragraph.</p></article></body></html>"
        )
        content = extract_content(html)
        assert content.clean_text == "First paragraph.\nSecond paragraph."
        assert content.canonical_url == "https://reuters.com/a"

    def test_boilerplate_density(self):
        """Dense newsletter/cookie phrases count as boilerplate."""
        assert is_boilerplate("Subscribe to our newsletter. Read more. Cookie policy. " * 10)
        assert not is_boilerplate(LONG_TEXT)


class TestContentFetchStage:
    """Tests for the fetch stage handler."""

    @pytest.mark.asyncio
    async def test_success_stores_text_and_canonical(self):
        """Readable content advances the row and refines canonical_url."""
        fetcher = FakeFetcher(LONG_TEXT, canonical_url="http://www.reuters.com/markets/apple-earnings/")
        outcome = await ContentFetchStage(fetcher, max_attempts=2, min_chars=200).run(filtered())
        assert outcome.status == ArticleStatus.CONTENT_FETCHED
        assert outcome.updates["clean_text"] == LONG_TEXT
        assert outcome.updates["canonical_url"] == "https://reuters.com/markets/apple-earnings"
        assert outcome.updates["fetch_attempts"] == 1

    @pytest.mark.asyncio
    async def test_short_content_discarded(self):
        """Too little text discards the row."""
        outcome = await ContentFetchStage(FakeFetcher("Too short"), min_chars=200).run(filtered())
        assert outcome.status == ArticleStatus.DISCARDED
        assert outcome.reason.startswith("Content too short")

    @pytest.mark.asyncio
    async def test_boilerplate_discarded(self):
        """Boilerplate pages are discarded."""
        fetcher = FakeFetcher("Subscribe to our newsletter. Read more. Cookie policy. " * 10)
        outcome = await ContentFetchStage(fetcher, min_chars=200).run(filtered())
        assert outcome.reason == "Boilerplate content"

    @pytest.mark.asyncio
    async def test_first_failure_is_retried(self):
        """A failed download below the attempt cap leaves the status alone."""
        outcome = await ContentFetchStage(FakeFetcher(fail=True), max_attempts=2).run(filtered())
        assert outcome.status is None
        assert outcome.updates["fetch_attempts"] == 1
        assert "ConnectionError" in outcome.updates["last_error"]

    @pytest.mark.asyncio
    async def test_last_failure_discards(self):
        """The failure that reaches the cap discards the row."""
        stage = ContentFetchStage(FakeFetcher(fail=True), max_attempts=2)
        outcome = await stage.run(filtered(fetch_attempts=1))
        assert outcome.status == ArticleStatus.DISCARDED
        assert outcome.reason == "Fetch failed after 2 attempts"

    @pytest.mark.asyncio
    async def test_exhausted_row_not_fetched_again(self):
        """A row already at the cap is discarded without a download."""
        fetcher = FakeFetcher(LONG_TEXT)
        outcome = await ContentFetchStage(fetcher, max_attempts=2).run(filtered(fetch_attempts=2))
        assert outcome.status == ArticleStatus.DISCARDED
        assert fetcher.calls == []


class TestClassificationStage:
    """Tests for the classify stage handler."""

    @pytest.mark.asyncio
    async def test_short_content_discarded_with_zero_impact(self):
        """Content under the minimum is discarded with impact 0."""
        outcome = await ClassificationStage(min_chars=400).run(fetched(clean_text="short", content_length=5))
        assert outcome.status == ArticleStatus.DISCARDED
        assert outcome.updates["impact_score"] == 0

    @pytest.mark.asyncio
    async def test_no_oracle_uses_heuristic(self):
        """Without a classifier the triage outputs drive the classification."""
        outcome = await ClassificationStage(min_chars=400).run(fetched())
        assert outcome.status == ArticleStatus.LLM_PROCESSED
        assert outcome.updates["impact_score"] == 65
        assert outcome.updates["event_type"] == "earnings"
        assert outcome.updates["matched_tickers"] == ["AAPL"]
        assert outcome.updates["llm_attempts"] == 1

    @pytest.mark.asyncio
    async def test_oracle_output_used(self):
        """A working classifier's output is written as-is."""
        output = ClassificationOutput(event_type="m&a", impact_score=85, matched_tickers=["msft"])
        classifier = FakeClassifier(output=output)
        outcome = await ClassificationStage(classifier, min_chars=400).run(fetched())
        assert outcome.updates["event_type"] == "m&a"
        assert outcome.updates["impact_score"] == 85
        assert outcome.updates["matched_tickers"] == ["MSFT"]

    @pytest.mark.asyncio
    async def test_oracle_failure_falls_back(self):
        """An oracle error falls back to the heuristic and records the error."""
        classifier = FakeClassifier(error=RuntimeError("bad json"))
        outcome = await ClassificationStage(classifier, min_chars=400).run(fetched())
        assert outcome.status == ArticleStatus.LLM_PROCESSED
        assert outcome.updates["impact_score"] == 65
        assert "bad json" in outcome.updates["last_error"]

    @pytest.mark.asyncio
    async def test_unavailable_oracle_not_called(self):
        """An unconfigured classifier is skipped."""
        classifier = FakeClassifier(available=False)
        await ClassificationStage(classifier, min_chars=400).run(fetched())
        assert classifier.calls == 0


class TestHeuristicClassification:
    """Tests for the deterministic classification."""

    def test_sentiment_from_word_counts(self):
        """Positive wording yields positive sentiment."""
        output = heuristic_classification(fetched())
        assert output.sentiment_label == "positive"
        assert output.sentiment > 0

    def test_scores_clamped(self):
        """Derived scores stay within 0-100."""
        output = heuristic_classification(fetched(likely_impact=100, clean_text="beat " * 20))
        assert output.opportunity_score == 100
