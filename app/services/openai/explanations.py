"""
Batched, cached, validated explanations for story groups.

Flow per request:
1. Serve what the explanation cache already holds.
2. Chunk the rest into oracle batches and run the batches concurrently.
3. Validate each returned explanation; invalid tickers earn the batch one
   corrective retry, anything still invalid gets the deterministic fallback.
4. Cache every result, in request order.

Usage:
    service = ExplanationService(cache=get_explanation_cache())
    explanations = await service.explain(events, ["AAPL", "MSFT"])
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from pydantic import ValidationError as PydanticValidationError

from app.cache.explanations import ExplanationCache
from app.core.config import settings
from app.core.exceptions import OracleResponseError
from app.core.logging import get_logger
from app.services.openai.client import chat_json
from app.services.openai.contexts import ExplanationEvent
from app.services.openai.fallback import generate_fallback_explanation
from app.services.openai.prompts import (
    RETRY_CORRECTION,
    TaskType,
    build_explanation_prompt,
    get_instructions,
)
from app.services.openai.schemas import Explanation
from app.services.openai.validation import ExplanationValidation, validate_explanation

logger = get_logger("openai.explanations")

Oracle = Callable[..., Awaitable[dict[str, Any]]]


def chunk(items: list, size: int) -> list[list]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class ExplanationService:
    def __init__(
        self,
        oracle: Oracle | None = None,
        cache: ExplanationCache | None = None,
        batch_size: int | None = None,
    ):
        self.oracle = oracle or chat_json
        self.cache = cache
        self.batch_size = batch_size or settings.explanation_batch_size

    async def _request(
        self, events: list[ExplanationEvent], holdings: list[str], retry: bool
    ) -> list[Any]:
        messages = [
            {"role": "system", "content": get_instructions(TaskType.EXPLAIN, holdings)},
            {"role": "user", "content": build_explanation_prompt(events)},
        ]
        if retry:
            messages.append({"role": "user", "content": RETRY_CORRECTION})

        data = await self.oracle(messages, temperature=0.4 if retry else 0.6, max_tokens=4000)
        explanations = data.get("explanations") if isinstance(data, dict) else None
        if not isinstance(explanations, list):
            raise OracleResponseError("Invalid response format: missing explanations array")
        if len(explanations) != len(events):
            logger.warning(f"Expected {len(events)} explanations, got {len(explanations)}")
        return explanations

    def _validate_all(
        self, explanations: list[Any], count: int, holdings: list[str]
    ) -> list[ExplanationValidation]:
        results = []
        for idx in range(count):
            if idx < len(explanations):
                results.append(validate_explanation(explanations[idx], holdings))
            else:
                results.append(ExplanationValidation(errors=["Missing explanation"]))
        return results

    def _accept(
        self,
        event: ExplanationEvent,
        explanation: Any,
        validation: ExplanationValidation,
        holdings: list[str],
    ) -> dict[str, Any]:
        if validation.valid:
            try:
                return Explanation.model_validate(explanation).model_dump()
            except PydanticValidationError as e:
                logger.warning(f"Explanation for {event.id} failed schema check: {e.error_count()} errors")
        else:
            logger.warning(
                f"Explanation for {event.id} invalid, using fallback",
                extra={"extra_fields": {
                    "errors": validation.errors[:5],
                    "invalid_tickers": validation.invalid_tickers,
                }},
            )
        return generate_fallback_explanation(event, holdings)

    async def generate_batch(
        self, events: list[ExplanationEvent], holdings: list[str]
    ) -> list[dict[str, Any]]:
        """One oracle batch with validation and a single corrective retry."""
        try:
            explanations = await self._request(events, holdings, retry=False)
            validations = self._validate_all(explanations, len(events), holdings)

            invalid = sorted({t for v in validations for t in v.invalid_tickers})
            if invalid:
                logger.warning(f"Invalid tickers found: {', '.join(invalid)}. Retrying")
                explanations = await self._request(events, holdings, retry=True)
                validations = self._validate_all(explanations, len(events), holdings)
        except Exception as e:
            logger.warning(f"Explanation batch failed, using fallbacks: {e}")
            return [generate_fallback_explanation(event, holdings) for event in events]

        for idx, validation in enumerate(validations):
            if validation.warnings:
                logger.debug(f"Quality warnings for event {idx}: {validation.warnings}")

        return [
            self._accept(
                event,
                explanations[idx] if idx < len(explanations) else None,
                validations[idx],
                holdings,
            )
            for idx, event in enumerate(events)
        ]

    async def explain(
        self, events: list[ExplanationEvent], holdings: list[str]
    ) -> list[dict[str, Any]]:
        """One explanation per event, same order as ``events``."""
        if not events:
            return []

        results: list[dict[str, Any] | None] = [None] * len(events)
        pending: list[int] = []
        for idx, event in enumerate(events):
            cached = await self.cache.get(event.id, holdings) if self.cache else None
            if cached is not None:
                results[idx] = cached
            else:
                pending.append(idx)

        hits = len(events) - len(pending)
        if hits:
            logger.info(f"Explanation cache hit: {hits}/{len(events)}")
        if not pending:
            return results  # type: ignore[return-value]

        batches = chunk(pending, self.batch_size)
        generated = await asyncio.gather(
            *(self.generate_batch([events[i] for i in batch], holdings) for batch in batches)
        )

        for batch, explanations in zip(batches, generated):
            for idx, explanation in zip(batch, explanations):
                results[idx] = explanation
                if self.cache is not None:
                    await self.cache.set(events[idx].id, holdings, explanation)

        logger.info(
            f"Explanations complete: {len(pending)} generated, {hits} cached",
            extra={"extra_fields": {"batches": len(batches)}},
        )
        return results  # type: ignore[return-value]
