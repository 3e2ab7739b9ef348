"""Feed and job API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class FeedItem(BaseModel):
    """One ranked article shown to the user."""

    url: str
    title: str
    source_name: Optional[str] = None
    published_at: Optional[datetime] = None
    event_type: Optional[str] = None
    impact_score: Optional[int] = None
    sentiment_label: Optional[str] = None
    matched_holdings: List[str] = Field(default_factory=list)
    exposure_level: Optional[str] = None
    profile: Optional[str] = Field(default=None, description="Profile the score was computed for")
    profile_adjusted_score: Optional[int] = None
    final_rank_score: Optional[int] = None
    cluster_id: Optional[str] = None


class FeedResponse(BaseModel):
    items: List[FeedItem]
    total: int


class JobStatusResponse(BaseModel):
    id: str
    name: str
    next_run_time: Optional[str] = None
    running: bool = False


class JobRunResponse(BaseModel):
    job: str
    count: int = Field(..., description="Job result count; 0 when skipped or failed")
