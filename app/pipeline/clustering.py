"""Keyword-set similarity clustering.

The algorithm is a single greedy pass: each unassigned item seeds a cluster
and pulls in every later unassigned item whose Jaccard similarity to the
seed meets the threshold. Similarity is measured to the seed only, so the
result is order-dependent and not transitive.
"""

from __future__ import annotations

import hashlib
import re
from typing import Iterable, Sequence

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "from", "as", "is", "was", "are", "were", "been", "be", "have", "has", "had", "do",
    "does", "did", "will", "would", "could", "should", "may", "might", "must", "can",
    "this", "that", "these", "those", "it", "its", "they", "them", "their", "there",
    "what", "which", "who", "when", "where", "why", "how", "all", "each", "other", "some",
    "such", "only", "own", "same", "than", "too", "very", "just", "into", "over", "after",
    "about", "says", "said", "amid", "more", "most", "also", "your", "here",
})

MIN_KEYWORD_LENGTH = 4

TOKEN = re.compile(r"[a-z0-9]+")


def extract_keywords(*texts: str | None) -> set[str]:
    """Lower-cased alphanumeric tokens, minus stop words and short tokens."""
    text = " ".join(t for t in texts if t).lower()
    return {
        token
        for token in TOKEN.findall(text)
        if len(token) >= MIN_KEYWORD_LENGTH and token not in STOP_WORDS
    }


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def cluster_keyword_sets(
    keyword_sets: Sequence[set[str]], threshold: float
) -> list[list[tuple[int, float]]]:
    """Greedy clusters over ``keyword_sets``.

    Returns one list per cluster of ``(index, similarity_to_seed)``; the seed
    comes first with similarity 1.0.
    """
    assigned: set[int] = set()
    clusters: list[list[tuple[int, float]]] = []
    for i, seed in enumerate(keyword_sets):
        if i in assigned:
            continue
        assigned.add(i)
        members = [(i, 1.0)]
        for j in range(i + 1, len(keyword_sets)):
            if j in assigned:
                continue
            similarity = jaccard(seed, keyword_sets[j])
            if similarity >= threshold:
                assigned.add(j)
                members.append((j, similarity))
        clusters.append(members)
    return clusters


def cluster_id_for(title: str | None) -> str:
    """Stable id derived from the seed title."""
    normalized = " ".join((title or "").lower().split())[:50]
    return "cluster_" + hashlib.md5(normalized.encode("utf-8")).hexdigest()[:8]
