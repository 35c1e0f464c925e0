"""Similarity heuristic for "same root cause" and "same theme" matching.

Both aggregation (deduplication) and triage (theme grouping) need to decide
whether two findings describe the same thing. There is no exact answer, so
the rule is kept in one place and every threshold is configurable.
"""

import re
from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, Optional

_WORD = re.compile(r"[a-z0-9_]+")

STOPWORDS = frozenset({
    "the", "and", "for", "with", "that", "this", "from", "into", "are", "not",
    "but", "its", "has", "have", "was", "were", "should", "could", "would",
    "there", "their", "them", "than", "then", "when", "which", "while", "also",
    "all", "any", "each", "more", "most", "other", "some", "such", "only",
    "same", "use", "used", "uses", "using", "can", "may", "one", "two",
})


def tokens(text: str) -> FrozenSet[str]:
    """Significant lowercase words of a text."""
    return frozenset(
        w for w in _WORD.findall((text or "").lower())
        if len(w) > 2 and w not in STOPWORDS
    )


def overlap(a: str, b: str) -> float:
    """Jaccard overlap of the significant words of two texts (0.0 - 1.0)."""
    ta, tb = tokens(a), tokens(b)
    if not ta or not tb:
        return 0.0
    return len(ta & tb) / len(ta | tb)


def _categories(finding) -> FrozenSet:
    cats = getattr(finding, "all_categories", None)
    if cats is None:
        cats = (finding.category,)
    return frozenset(cats)


@dataclass
class SimilarityHeuristic:
    """
    Decides whether two findings share a root cause.

    Two findings match when they are in the same file or share a category,
    AND their descriptions overlap by at least `threshold`.
    """
    threshold: float = 0.5

    def score(self, a, b) -> float:
        return overlap(a.description, b.description)

    def related(self, a, b) -> bool:
        same_file = a.location.path == b.location.path
        shared_category = bool(_categories(a) & _categories(b))
        return same_file or shared_category

    def same_root_cause(self, a, b) -> bool:
        return self.related(a, b) and self.score(a, b) >= self.threshold

    def mentions_path(self, text: str, path: str) -> bool:
        """True if a file path (or its basename) is named in the text."""
        if not path:
            return False
        basename = path.rsplit("/", 1)[-1]
        return path in text or (len(basename) > 3 and basename in text)

    def cluster(self, items: Iterable, related: Optional[Callable] = None):
        """
        Group items transitively by a pairwise predicate.

        Uses union-find so that A~B and B~C puts A, B, C together.
        Groups keep input order, and groups are ordered by first member.

        Args:
            items: Items to group
            related: Pairwise predicate, same_root_cause by default
        """
        items = list(items)
        related = related or self.same_root_cause
        parent = list(range(len(items)))

        def find(x):
            if parent[x] != x:
                parent[x] = find(parent[x])
            return parent[x]

        def union(x, y):
            px, py = find(x), find(y)
            if px != py:
                parent[max(px, py)] = min(px, py)

        for i in range(len(items)):
            for j in range(i + 1, len(items)):
                if related(items[i], items[j]):
                    union(i, j)

        groups = {}
        for i, item in enumerate(items):
            groups.setdefault(find(i), []).append(item)
        return [groups[root] for root in sorted(groups)]
