"""Pipeline jobs: ingest, process, rank and the explanation cache sweep.

Each entry point returns a count and never raises; the job boundary turns a
failure into 0 and releases the job's lock.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

import httpx

from app.cache import MemoryTTLCache, get_explanation_cache
from app.core.config import settings
from app.core.logging import get_logger
from app.pipeline.classify import ClassificationStage, Classifier
from app.pipeline.fetch import ContentFetchStage, Fetcher
from app.pipeline.ingest import Ingestor
from app.pipeline.personalize import Personalizer, ScoreCache
from app.pipeline.ranking import RankStage
from app.pipeline.runner import StageReport, run_stage
from app.pipeline.status import Stage
from app.pipeline.store import ArticleStore
from app.pipeline.story_groups import build_story_group
from app.pipeline.triage import TitleTriage
from app.repositories import SqlArticleStore
from app.services.news import ContentFetcher, RedirectResolver, SourceRegistry, build_registry
from app.services.openai import ExplanationService, OpenAIClassifier, get_client_manager

from .executor import job_boundary
from .registry import register_job
from .utils import elapsed_ms, job_timer, log_job_success


logger = get_logger("jobs.pipeline")


@dataclass
class PipelineContext:
    """Collaborators the jobs run against."""

    store: ArticleStore
    registry: Optional[SourceRegistry] = None
    resolver: Optional[RedirectResolver] = None
    fetcher: Optional[Fetcher] = None
    classifier: Optional[Classifier] = None
    explainer: Optional[ExplanationService] = None
    score_cache: Optional[ScoreCache] = None
    user_id: int | None = None
    profile: str | None = None

    def __post_init__(self):
        if self.user_id is None:
            self.user_id = settings.default_user_id
        if self.profile is None:
            self.profile = settings.default_profile


_http_client: httpx.AsyncClient | None = None
_context: PipelineContext | None = None


def get_context() -> PipelineContext:
    """Process-wide context over PostgreSQL, the news sources and OpenAI."""
    global _http_client, _context
    if _context is None:
        _http_client = httpx.AsyncClient(timeout=settings.external_api_timeout)
        _context = PipelineContext(
            store=SqlArticleStore(),
            registry=build_registry(_http_client),
            resolver=RedirectResolver(_http_client),
            fetcher=ContentFetcher(_http_client),
            classifier=OpenAIClassifier(get_client_manager()),
            explainer=ExplanationService(cache=get_explanation_cache()),
            score_cache=MemoryTTLCache(
                ttl=settings.score_cache_ttl,
                max_entries=settings.score_cache_max_entries,
                name="scores",
            ),
        )
    return _context


async def close_context() -> None:
    global _http_client, _context
    if _http_client is not None:
        await _http_client.aclose()
    _http_client = None
    _context = None


@register_job("ingest")
@job_boundary("ingest")
async def run_ingest(context: PipelineContext | None = None) -> int:
    """Collect holdings, macro and feed buckets and upsert them. Returns rows stored."""
    ctx = context or get_context()
    if ctx.registry is None:
        raise ValueError("ingest needs a source registry")
    start = job_timer()

    holdings = await ctx.store.list_holdings(ctx.user_id)
    result = await Ingestor(ctx.registry, ctx.store, ctx.resolver).run(holdings)

    log_job_success(
        "ingest",
        f"Stored {result.stored} articles from {result.collected} records",
        holdings=len(holdings),
        holding_records=result.holdings,
        macro_records=result.macro,
        feed_records=result.feeds,
        unique=result.unique,
        inserted=result.inserted,
        merged=result.merged,
        failed=result.failed,
        skipped=result.skipped,
        disabled_sources=",".join(ctx.registry.disabled_sources) or "none",
        duration_ms=elapsed_ms(start),
    )
    return result.stored


@register_job("process")
@job_boundary("process")
async def run_process(context: PipelineContext | None = None) -> int:
    """Triage, fetch, classify and personalize one batch each. Returns rows handled."""
    ctx = context or get_context()
    start = job_timer()

    holdings = await ctx.store.list_holdings(ctx.user_id)
    fetcher = ctx.fetcher or ContentFetcher()
    stages = [
        (Stage.TRIAGE, TitleTriage(holdings).run, settings.triage_batch_size),
        (Stage.FETCH, ContentFetchStage(fetcher).run, settings.fetch_batch_size),
        (Stage.CLASSIFY, ClassificationStage(ctx.classifier).run, settings.classify_batch_size),
        (
            Stage.PERSONALIZE,
            Personalizer(holdings, ctx.profile, ctx.score_cache).run,
            settings.personalize_batch_size,
        ),
    ]

    reports: list[StageReport] = []
    for index, (stage, handler, limit) in enumerate(stages):
        if index and settings.stage_batch_delay:
            await asyncio.sleep(settings.stage_batch_delay)
        reports.append(await run_stage(ctx.store, stage, handler, limit))

    processed = sum(r.processed for r in reports)
    log_job_success(
        "process",
        f"Handled {processed} articles across {len(reports)} stages",
        **{f"{r.stage.value}_advanced": r.advanced for r in reports},
        **{f"{r.stage.value}_discarded": r.discarded for r in reports},
        errors=sum(r.errors for r in reports),
        duration_ms=elapsed_ms(start),
    )
    return processed


@register_job("rank")
@job_boundary("rank")
async def run_rank(context: PipelineContext | None = None) -> int:
    """Rank and cluster personalized articles, then persist story groups. Returns rows ranked."""
    ctx = context or get_context()
    start = job_timer()

    articles = await ctx.store.select_for_stage(Stage.RANK, settings.rank_batch_size)
    if not articles:
        logger.debug("No personalized articles to rank")
        return 0

    result = RankStage().run(articles)
    ranked = 0
    for outcome in result.outcomes:
        try:
            if await ctx.store.apply_outcome(outcome):
                ranked += 1
        except Exception:
            logger.exception(f"[rank] failed for {outcome.url}")

    drafts = [build_story_group(cluster) for cluster in result.clusters if cluster.shown]
    explanations: list = [None] * len(drafts)
    if drafts and ctx.explainer is not None:
        holdings = await ctx.store.list_holdings(ctx.user_id)
        tickers = [h.ticker.upper() for h in holdings]
        explanations = await ctx.explainer.explain([d.event for d in drafts], tickers)

    groups = 0
    for draft, explanation in zip(drafts, explanations):
        try:
            await ctx.store.save_story_group(draft, explanation)
            groups += 1
        except Exception:
            logger.exception(f"Failed to save story group {draft.cluster_id}")

    log_job_success(
        "rank",
        f"Ranked {ranked} articles into {len(result.clusters)} clusters",
        selected=len(articles),
        shown=len(drafts),
        story_groups=groups,
        duration_ms=elapsed_ms(start),
    )
    return ranked


@register_job("explanation_cache_sweep")
@job_boundary("explanation_cache_sweep")
async def run_explanation_cache_sweep() -> int:
    """Drop expired explanation cache entries. Returns entries removed."""
    removed = await get_explanation_cache().sweep()
    if removed:
        log_job_success("explanation_cache_sweep", f"Removed {removed} expired entries", removed=removed)
    return removed
