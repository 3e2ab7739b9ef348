"""Tests for explanation validation, fallback, caching and batching."""

from __future__ import annotations

import pytest

from app.cache.explanations import MemoryExplanationCache, explanation_cache_key
from app.cache.memory import MemoryTTLCache
from app.core.exceptions import OracleResponseError
from app.services.openai.client import CircuitBreakerState, parse_json_content
from app.services.openai.contexts import ExplanationEvent, RawArticle
from app.services.openai.explanations import ExplanationService, chunk
from app.services.openai.fallback import generate_fallback_explanation
from app.services.openai.prompts import RETRY_CORRECTION
from app.services.openai.validation import extract_tickers, validate_explanation


def good_explanation(summary: str = "Apple reported strong quarterly results.") -> dict:
    explanation = generate_fallback_explanation(
        ExplanationEvent(id="x", short_summary=summary), ["AAPL"]
    )
    explanation.pop("fallback")
    return explanation


def make_event(event_id: str, impact: str = "medium") -> ExplanationEvent:
    return ExplanationEvent(
        id=event_id,
        title=f"Story {event_id}",
        short_summary="Apple beat estimates",
        impact_level=impact,
        raw_articles=[RawArticle(source="Reuters", title="Apple beats", description="Strong iPhone demand")],
    )


class ScriptedOracle:
    """Returns one explanation per event in the prompt, or scripted replies."""

    def __init__(self, replies=None, error: Exception | None = None):
        self.replies = list(replies or [])
        self.error = error
        self.calls: list[dict] = []

    async def __call__(self, messages, temperature=0.3, max_tokens=1000):
        self.calls.append({"messages": messages, "temperature": temperature, "max_tokens": max_tokens})
        if self.error is not None:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        count = messages[1]["content"].count("Event ID:")
        return {"explanations": [good_explanation() for _ in range(count)]}


class TestValidation:
    """Tests for explanation validation."""

    def test_good_explanation_is_valid(self):
        """A complete explanation mentioning only held tickers passes."""
        explanation = good_explanation("AAPL reported strong results.")
        assert validate_explanation(explanation, ["AAPL"]).valid

    def test_unknown_ticker_flagged(self):
        """Tickers outside the holdings are collected separately from errors."""
        result = validate_explanation(good_explanation("NVDA shares rallied."), ["AAPL"])
        assert not result.valid
        assert result.errors == []
        assert result.invalid_tickers == ["NVDA"]

    def test_common_words_not_tickers(self):
        """Acronyms such as CEO and GDP are not tickers."""
        assert extract_tickers("The CEO said GDP and MSFT moved") == ["MSFT"]

    def test_structural_errors(self):
        """Missing parts and bad scenario counts are errors."""
        explanation = good_explanation()
        explanation["mostLikelyScenarios"] = explanation["mostLikelyScenarios"][:1]
        del explanation["sources"]
        errors = validate_explanation(explanation, []).errors
        assert "mostLikelyScenarios must have 2-3 items (has 1)" in errors
        assert "Missing or invalid sources" in errors

    def test_urgency_language(self):
        """Urgent wording is rejected."""
        explanation = good_explanation("Investors must act immediately.")
        errors = validate_explanation(explanation, []).errors
        assert 'Urgency language detected: "must"' in errors

    def test_not_an_object(self):
        """Non-dict output is invalid."""
        assert validate_explanation(["nope"], []).errors == ["Explanation is not an object"]


class TestFallback:
    """Tests for the deterministic explanation."""

    def test_high_impact_has_three_scenarios(self):
        """High impact adds the overreaction scenario."""
        high = generate_fallback_explanation(make_event("a", "high"), ["AAPL"])
        low = generate_fallback_explanation(make_event("b", "low"), [])
        assert len(high["mostLikelyScenarios"]) == 3
        assert len(low["mostLikelyScenarios"]) == 2
        assert high["classification"]["action"] == "MONITOR"
        assert high["fallback"] is True

    def test_fallback_passes_validation(self):
        """The fallback itself is a valid explanation."""
        explanation = generate_fallback_explanation(make_event("a", "high"), ["AAPL"])
        assert validate_explanation(explanation, ["AAPL"]).valid
        assert explanation["sources"][0]["name"] == "Reuters"


class TestParseJsonContent:
    """Tests for oracle reply parsing."""

    def test_plain_json(self):
        """A plain JSON object parses."""
        assert parse_json_content('{"a": 1}') == {"a": 1}

    def test_fenced_json(self):
        """A fenced json block is extracted."""
        assert parse_json_content('Here:\n```json\n{"a": 2}\n```') == {"a": 2}

    @pytest.mark.parametrize("content", ["", "not json", "[1, 2]"])
    def test_invalid_raises(self, content):
        """Empty, unparseable or non-object replies raise."""
        with pytest.raises(OracleResponseError):
            parse_json_content(content)


class TestCircuitBreakerState:
    """Tests for the breaker state machine."""

    def test_open_blocks_until_timeout(self):
        """An open circuit refuses requests until the timeout passes."""
        state = CircuitBreakerState()
        assert state.should_allow_request(60)
        state.open_circuit()
        assert not state.should_allow_request(60)
        assert state.should_allow_request(0)

    def test_success_resets(self):
        """A success closes the circuit and clears failures."""
        state = CircuitBreakerState()
        state.record_failure()
        state.open_circuit()
        state.record_success()
        assert state.failures == 0
        assert not state.is_open


class TestMemoryCaches:
    """Tests for the TTL cache and explanation keys."""

    def test_expiry_with_injected_clock(self):
        """Entries vanish once the clock passes their TTL."""
        now = [100.0]
        cache = MemoryTTLCache(ttl=30, clock=lambda: now[0])
        cache.set("k", "v")
        now[0] = 129.0
        assert cache.get("k") == "v"
        now[0] = 131.0
        assert cache.get("k") is None

    def test_sweep_removes_expired(self):
        """Sweep drops expired entries and reports the count."""
        now = [0.0]
        cache = MemoryTTLCache(ttl=10, clock=lambda: now[0])
        cache.set("a", 1)
        now[0] = 5.0
        cache.set("b", 2)
        now[0] = 12.0
        assert cache.sweep() == 1
        assert len(cache) == 1

    def test_capacity_evicts_oldest(self):
        """Over capacity, the least recently used entry goes first."""
        cache = MemoryTTLCache(ttl=60, max_entries=2)
        for key in ("a", "b", "c"):
            cache.set(key, key)
        assert "a" not in cache
        assert cache.get("c") == "c"

    def test_key_sorts_holdings(self):
        """Holding order and case do not change the key."""
        assert explanation_cache_key("evt", ["msft", "AAPL"]) == "evt||AAPL,MSFT"
        assert explanation_cache_key("evt", []) == "evt||"

    @pytest.mark.asyncio
    async def test_explanation_cache_roundtrip(self):
        """Payloads are shared across holding orderings."""
        cache = MemoryExplanationCache(ttl=60)
        await cache.set("evt", ["MSFT", "AAPL"], {"summary": "x"})
        assert await cache.get("evt", ["AAPL", "MSFT"]) == {"summary": "x"}
        assert await cache.get("evt", ["AAPL"]) is None


class TestExplanationService:
    """Tests for batched explanation generation."""

    def test_chunk(self):
        """Items are split into fixed-size batches."""
        assert chunk([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]

    @pytest.mark.asyncio
    async def test_valid_output_accepted(self):
        """Valid oracle output is returned without the fallback marker."""
        oracle = ScriptedOracle()
        service = ExplanationService(oracle=oracle, batch_size=5)
        [result] = await service.explain([make_event("a")], ["AAPL"])
        assert "fallback" not in result
        assert result["summary"] == "Apple reported strong quarterly results."
        assert oracle.calls[0]["max_tokens"] == 4000
        assert "Explain these 1 event(s)" in oracle.calls[0]["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_invalid_ticker_retried_once(self):
        """An unknown ticker triggers one corrective retry."""
        oracle = ScriptedOracle(replies=[
            {"explanations": [good_explanation("NVDA shares rallied.")]},
            {"explanations": [good_explanation()]},
        ])
        service = ExplanationService(oracle=oracle, batch_size=5)
        [result] = await service.explain([make_event("a")], ["AAPL"])
        assert len(oracle.calls) == 2
        assert oracle.calls[1]["messages"][-1]["content"] == RETRY_CORRECTION
        assert "fallback" not in result

    @pytest.mark.asyncio
    async def test_persistent_invalid_ticker_falls_back(self):
        """Still invalid after the retry means the fallback."""
        bad = {"explanations": [good_explanation("NVDA shares rallied.")]}
        oracle = ScriptedOracle(replies=[bad, bad])
        service = ExplanationService(oracle=oracle, batch_size=5)
        [result] = await service.explain([make_event("a")], ["AAPL"])
        assert len(oracle.calls) == 2
        assert result["fallback"] is True

    @pytest.mark.asyncio
    async def test_oracle_error_falls_back_for_batch(self):
        """An oracle failure yields a fallback for every event in the batch."""
        service = ExplanationService(oracle=ScriptedOracle(error=RuntimeError("down")), batch_size=5)
        results = await service.explain([make_event("a"), make_event("b")], ["AAPL"])
        assert [r["fallback"] for r in results] == [True, True]

    @pytest.mark.asyncio
    async def test_missing_explanations_array_falls_back(self):
        """A reply without an explanations array is a batch failure."""
        service = ExplanationService(oracle=ScriptedOracle(replies=[{"other": []}]), batch_size=5)
        [result] = await service.explain([make_event("a")], [])
        assert result["fallback"] is True

    @pytest.mark.asyncio
    async def test_cache_hit_skips_oracle(self):
        """A second request for the same event and holdings is served from cache."""
        oracle = ScriptedOracle()
        service = ExplanationService(oracle=oracle, cache=MemoryExplanationCache(ttl=60), batch_size=5)
        first = await service.explain([make_event("a")], ["AAPL"])
        second = await service.explain([make_event("a")], ["AAPL"])
        assert len(oracle.calls) == 1
        assert second == first

    @pytest.mark.asyncio
    async def test_events_split_into_batches(self):
        """Seven events with batch size three need three oracle calls."""
        oracle = ScriptedOracle()
        service = ExplanationService(oracle=oracle, batch_size=3)
        events = [make_event(str(i)) for i in range(7)]
        results = await service.explain(events, ["AAPL"])
        assert len(oracle.calls) == 3
        assert len(results) == 7
        assert all("fallback" not in r for r in results)

    @pytest.mark.asyncio
    async def test_empty_request(self):
        """No events means no oracle call."""
        oracle = ScriptedOracle()
        assert await ExplanationService(oracle=oracle).explain([], []) == []
        assert oracle.calls == []
