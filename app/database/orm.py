"""SQLAlchemy ORM models for the signal pipeline.

Usage:
    from app.database.orm import Article
    from app.database.connection import get_session

    async with get_session() as session:
        article = await session.get(Article, url)
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Naming convention for constraints and indexes
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all ORM models with naming convention."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


def _json_list():
    return mapped_column(JSONB, nullable=False, server_default=text("'[]'::jsonb"), default=list)


# =============================================================================
# ARTICLES
# =============================================================================


class Article(Base):
    """One row per normalized article URL."""
    __tablename__ = "articles"

    url: Mapped[str] = mapped_column(Text, primary_key=True)
    canonical_url: Mapped[str | None] = mapped_column(Text)
    original_url: Mapped[str | None] = mapped_column(Text)
    final_url: Mapped[str | None] = mapped_column(Text)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    content: Mapped[str | None] = mapped_column(Text)
    source_name: Mapped[str | None] = mapped_column(String(255))
    feed_source: Mapped[str | None] = mapped_column(String(100))
    author: Mapped[str | None] = mapped_column(String(255))
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    searched_by: Mapped[str | None] = mapped_column(Text)  # comma-joined tags
    scrape_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    status_reason: Mapped[str | None] = mapped_column(Text)
    title_filtered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    content_fetched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    llm_processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    personalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    ranked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    discarded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    fetch_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    llm_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text)

    # Triage
    title_relevance: Mapped[int | None] = mapped_column(Integer)
    title_event_type: Mapped[str | None] = mapped_column(String(30))
    title_reason_short: Mapped[str | None] = mapped_column(Text)
    title_ticker_matches: Mapped[list] = _json_list()
    title_sector_matches: Mapped[list] = _json_list()
    likely_impact: Mapped[int | None] = mapped_column(Integer)

    # Fetch
    clean_text: Mapped[str | None] = mapped_column(Text)
    content_length: Mapped[int | None] = mapped_column(Integer)

    # Classification
    event_type: Mapped[str | None] = mapped_column(String(30))
    impact_score: Mapped[int | None] = mapped_column(Integer)
    sentiment: Mapped[float | None] = mapped_column(Float)
    sentiment_label: Mapped[str | None] = mapped_column(String(10))
    risk_score: Mapped[int | None] = mapped_column(Integer)
    opportunity_score: Mapped[int | None] = mapped_column(Integer)
    volatility_score: Mapped[int | None] = mapped_column(Integer)
    matched_tickers: Mapped[list] = _json_list()
    matched_sectors: Mapped[list] = _json_list()

    # Personalization
    matched_holdings: Mapped[list] = _json_list()
    holding_relevance_score: Mapped[int | None] = mapped_column(Integer)
    profile_adjusted_score: Mapped[int | None] = mapped_column(Integer)
    profile_type_cached: Mapped[str | None] = mapped_column(String(20))
    exposure_level: Mapped[str | None] = mapped_column(String(20))

    # Ranking
    final_rank_score: Mapped[int | None] = mapped_column(Integer)
    cluster_id: Mapped[str | None] = mapped_column(String(20))
    is_primary_in_cluster: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    shown_to_user: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'title_filtered', 'content_fetched', 'llm_processed', "
            "'personalized', 'ranked', 'discarded')",
            name="valid_status",
        ),
        Index("idx_articles_status_published", "status", "published_at"),
        Index("idx_articles_status_profile_score", "status", "profile_adjusted_score"),
        Index("idx_articles_shown", "shown_to_user", "final_rank_score"),
        Index("idx_articles_cluster", "cluster_id"),
    )


class Holding(Base):
    """A tracked position."""
    __tablename__ = "holdings"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    ticker: Mapped[str] = mapped_column(String(20), nullable=False)
    label: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "ticker", name="uq_holdings_user_ticker"),
    )


class ArticleDecision(Base):
    """Audit trail: one row per applied stage transition."""
    __tablename__ = "article_decisions"

    id: Mapped[int] = mapped_column(primary_key=True)
    article_url: Mapped[str] = mapped_column(Text, nullable=False)
    stage_name: Mapped[str] = mapped_column(String(20), nullable=False)
    accepted: Mapped[bool] = mapped_column(Boolean, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)
    rank_score: Mapped[int | None] = mapped_column(Integer)
    impact_score: Mapped[int | None] = mapped_column(Integer)
    quality_score: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_article_decisions_url", "article_url"),
        Index("idx_article_decisions_stage_created", "stage_name", "created_at"),
    )


# =============================================================================
# STORY GROUPS
# =============================================================================


class StoryGroup(Base):
    """A cluster of articles describing one event on one day."""
    __tablename__ = "story_groups"

    id: Mapped[int] = mapped_column(primary_key=True)
    scope: Mapped[str] = mapped_column(String(10), nullable=False)
    # Empty string for GLOBAL groups so the unique key holds
    primary_ticker: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    date_bucket: Mapped[str] = mapped_column(String(10), nullable=False)
    group_title: Mapped[str] = mapped_column(Text, nullable=False)
    cluster_id: Mapped[str | None] = mapped_column(String(20))
    impact_level: Mapped[str] = mapped_column(String(10), nullable=False)
    confidence_level: Mapped[str] = mapped_column(String(10), nullable=False)
    model_version: Mapped[str | None] = mapped_column(String(50))
    pipeline_version: Mapped[str | None] = mapped_column(String(20))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("scope IN ('GLOBAL', 'TICKER')", name="valid_scope"),
        UniqueConstraint(
            "scope", "primary_ticker", "date_bucket", "group_title", name="uq_story_groups_key"
        ),
        Index("idx_story_groups_bucket", "date_bucket", "scope"),
    )


class StoryGroupExplanation(Base):
    __tablename__ = "story_group_explanations"

    story_group_id: Mapped[int] = mapped_column(
        ForeignKey("story_groups.id", ondelete="CASCADE"), primary_key=True
    )
    what_happened: Mapped[str | None] = mapped_column(Text)
    why_it_happened: Mapped[str | None] = mapped_column(Text)
    why_it_matters_now: Mapped[str | None] = mapped_column(Text)
    what_to_watch_next: Mapped[str | None] = mapped_column(Text)
    what_this_does_not_mean: Mapped[str | None] = mapped_column(Text)
    sources_summary: Mapped[list] = _json_list()
    cause_confidence: Mapped[str | None] = mapped_column(String(10))
    cause_reason: Mapped[str | None] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class StoryGroupArticle(Base):
    __tablename__ = "story_group_articles"

    story_group_id: Mapped[int] = mapped_column(
        ForeignKey("story_groups.id", ondelete="CASCADE"), primary_key=True
    )
    article_url: Mapped[str] = mapped_column(Text, primary_key=True)
    similarity_score: Mapped[float | None] = mapped_column(Float)


class StoryGroupRelatedTicker(Base):
    __tablename__ = "story_group_related_tickers"

    story_group_id: Mapped[int] = mapped_column(
        ForeignKey("story_groups.id", ondelete="CASCADE"), primary_key=True
    )
    ticker: Mapped[str] = mapped_column(String(20), primary_key=True)
    relationship_type: Mapped[str] = mapped_column(String(20), nullable=False)
