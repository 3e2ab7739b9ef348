"""Rank stage: final score, clustering and feed visibility."""

from __future__ import annotations

from dataclasses import dataclass, field

from app.core.config import settings
from app.core.logging import get_logger

from .clustering import cluster_id_for, cluster_keyword_sets, extract_keywords
from .models import Article, StageOutcome
from .status import ArticleStatus, Stage

logger = get_logger("pipeline.ranking")


PROFILE_WEIGHT = 0.6
IMPACT_WEIGHT = 0.4


def final_rank_score(article: Article) -> int:
    score = round(
        (article.profile_adjusted_score or 0) * PROFILE_WEIGHT
        + (article.impact_score or 0) * IMPACT_WEIGHT
    )
    return max(0, min(100, score))


@dataclass
class ClusterMember:
    article: Article
    similarity: float
    final_rank_score: int
    is_primary: bool = False
    shown: bool = False


@dataclass
class ArticleCluster:
    cluster_id: str
    members: list[ClusterMember] = field(default_factory=list)

    @property
    def seed(self) -> ClusterMember:
        return self.members[0]

    @property
    def primary(self) -> ClusterMember:
        return next(m for m in self.members if m.is_primary)

    @property
    def shown(self) -> bool:
        return self.primary.shown

    @property
    def size(self) -> int:
        return len(self.members)


@dataclass
class RankResult:
    outcomes: list[StageOutcome]
    clusters: list[ArticleCluster]


@dataclass
class RankStage:
    """Ranks a whole batch at once; clustering needs every candidate."""

    similarity_threshold: float | None = None
    feed_threshold: int | None = None

    def __post_init__(self):
        if self.similarity_threshold is None:
            self.similarity_threshold = settings.similarity_threshold
        if self.feed_threshold is None:
            self.feed_threshold = settings.feed_rank_threshold

    def cluster(self, articles: list[Article]) -> list[ArticleCluster]:
        keyword_sets = [extract_keywords(a.title, a.description) for a in articles]
        clusters: list[ArticleCluster] = []
        for group in cluster_keyword_sets(keyword_sets, self.similarity_threshold):
            members = [
                ClusterMember(
                    article=articles[i],
                    similarity=round(similarity, 4),
                    final_rank_score=final_rank_score(articles[i]),
                )
                for i, similarity in group
            ]
            primary = members[0]
            for member in members[1:]:
                # Strictly greater, so the earliest member wins ties
                if (member.article.profile_adjusted_score or 0) > (
                    primary.article.profile_adjusted_score or 0
                ):
                    primary = member
            primary.is_primary = True
            primary.shown = primary.final_rank_score >= self.feed_threshold
            clusters.append(
                ArticleCluster(cluster_id=cluster_id_for(members[0].article.title), members=members)
            )
        return clusters

    def run(self, articles: list[Article]) -> RankResult:
        clusters = self.cluster(articles)
        outcomes = [
            StageOutcome(
                stage=Stage.RANK,
                url=member.article.url,
                updates={
                    "final_rank_score": member.final_rank_score,
                    "cluster_id": cluster.cluster_id,
                    "is_primary_in_cluster": member.is_primary,
                    "shown_to_user": member.shown,
                },
                status=ArticleStatus.RANKED,
            )
            for cluster in clusters
            for member in cluster.members
        ]
        logger.debug(
            f"Ranked {len(outcomes)} articles into {len(clusters)} clusters",
            extra={"extra_fields": {"shown": sum(1 for c in clusters if c.shown)}},
        )
        return RankResult(outcomes=outcomes, clusters=clusters)
