"""Data access layer repositories.

Each repository module provides async functions for database operations.
All code uses SQLAlchemy ORM models from `app.database.orm` with the
`get_session()` context manager.

- articles_orm: article upserts, stage selection and conditional transitions
- holdings_orm: tracked holdings
- story_groups_orm: story groups, explanations, members and related tickers
- article_store: the pipeline's ArticleStore over the modules above
"""

from . import articles_orm
from . import holdings_orm
from . import story_groups_orm
from .article_store import SqlArticleStore

__all__ = [
    "SqlArticleStore",
    "articles_orm",
    "holdings_orm",
    "story_groups_orm",
]
