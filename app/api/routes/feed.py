"""Ranked feed routes."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_pipeline_context
from app.jobs import PipelineContext
from app.pipeline.personalize import Personalizer
from app.schemas.feed import FeedItem, FeedResponse

router = APIRouter()


@router.get(
    "",
    response_model=FeedResponse,
    summary="Ranked feed",
    description=(
        "Ranked articles shown to the user. Passing a profile other than the one "
        "an article was scored for recomputes its profile score."
    ),
)
async def get_feed(
    limit: int = Query(50, ge=1, le=200),
    profile: Optional[Literal["focus", "balanced", "broad"]] = Query(None),
    ctx: PipelineContext = Depends(get_pipeline_context),
) -> FeedResponse:
    articles = await ctx.store.list_feed(limit)

    personalizer: Personalizer | None = None
    if profile is not None:
        holdings = await ctx.store.list_holdings(ctx.user_id)
        personalizer = Personalizer(holdings, profile, ctx.score_cache)

    items = []
    for article in articles:
        score = article.profile_adjusted_score
        scored_for = article.profile_type_cached
        if personalizer is not None:
            score = personalizer.score(article, profile).score
            scored_for = profile
        items.append(
            FeedItem(
                url=article.url,
                title=article.title,
                source_name=article.source_name,
                published_at=article.published_at,
                event_type=article.event_type,
                impact_score=article.impact_score,
                sentiment_label=article.sentiment_label,
                matched_holdings=article.matched_holdings,
                exposure_level=article.exposure_level,
                profile=scored_for,
                profile_adjusted_score=score,
                final_rank_score=article.final_rank_score,
                cluster_id=article.cluster_id,
            )
        )
    return FeedResponse(items=items, total=len(items))
