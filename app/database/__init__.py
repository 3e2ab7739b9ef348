"""Database module: SQLAlchemy async engine, sessions and ORM models."""

from .connection import (
    close_database,
    close_sqlalchemy_engine,
    create_schema,
    get_async_database_url,
    get_engine,
    get_session,
    init_database,
    init_sqlalchemy_engine,
)
from .orm import (
    Article,
    ArticleDecision,
    Base,
    Holding,
    StoryGroup,
    StoryGroupArticle,
    StoryGroupExplanation,
    StoryGroupRelatedTicker,
)


__all__ = [
    "Article",
    "ArticleDecision",
    "Base",
    "Holding",
    "StoryGroup",
    "StoryGroupArticle",
    "StoryGroupExplanation",
    "StoryGroupRelatedTicker",
    "close_database",
    "close_sqlalchemy_engine",
    "create_schema",
    "get_async_database_url",
    "get_engine",
    "get_session",
    "init_database",
    "init_sqlalchemy_engine",
]
