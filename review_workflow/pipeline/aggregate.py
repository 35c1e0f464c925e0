"""Finding Aggregator - merge analyzer output into one ordered report."""

from datetime import date as Date
from typing import List, Optional, Tuple

from ..models import (
    AnalyzerResult,
    Category,
    Finding,
    RawFinding,
    Report,
    ScanContext,
)
from ..utils import SimilarityHeuristic, get_logger


def _unique_join(parts: List[str]) -> str:
    seen = []
    for part in parts:
        part = part.strip()
        if part and part not in seen:
            seen.append(part)
    return "\n\n".join(seen)


class FindingAggregator:
    """
    Collects findings from independent analyzers into a single Report.

    Deduplication:
    1. Same file and line
    2. Same root cause at different locations (similarity heuristic)

    Ordering is severity first, then category in declaration order, then
    input order. Ids are assigned after ordering and never change.
    """

    def __init__(self, similarity: Optional[SimilarityHeuristic] = None):
        self.similarity = similarity or SimilarityHeuristic()
        self.logger = get_logger()

    def _duplicates(self, a: RawFinding, b: RawFinding) -> bool:
        if a.location.line is not None and a.location == b.location:
            return True
        return self.similarity.same_root_cause(a, b)

    def deduplicate(self, raw: List[RawFinding]) -> List[Tuple[int, List[RawFinding]]]:
        """
        Group duplicate findings transitively.

        Returns:
            List of (first input index, members) groups
        """
        indexes = self.similarity.cluster(
            range(len(raw)),
            related=lambda i, j: self._duplicates(raw[i], raw[j]),
        )
        return [(group[0], [raw[i] for i in group]) for group in indexes]

    @staticmethod
    def merge(members: List[RawFinding]) -> RawFinding:
        """Keep the most severe member's identity; union everything else."""
        primary = min(members, key=lambda f: f.severity.rank)
        return RawFinding(
            description=primary.description,
            severity=primary.severity,
            category=primary.category,
            location=primary.location,
            details=_unique_join([primary.details] + [m.details for m in members]),
            suggestion=_unique_join([primary.suggestion] + [m.suggestion for m in members]),
        )

    def aggregate(
        self,
        results: List[AnalyzerResult],
        scope: str,
        context: ScanContext,
        day: Optional[Date] = None,
    ) -> Report:
        """
        Build the report from analyzer results.

        Failed analyzers become explicit incomplete markers; they never block
        aggregation of the other categories.

        Args:
            results: One result per analyzer
            scope: Scope shown in the report
            context: Team context
            day: Report date (default: today)

        Returns:
            Report with sequential ids
        """
        raw: List[RawFinding] = []
        incomplete: List[Tuple[Category, str]] = []

        for result in results:
            if result.failed:
                reason = result.error or "analyzer did not report"
                incomplete.append((result.category, reason))
                self.logger.warning(f"Category {result.category.value} incomplete: {reason}")
                continue
            raw.extend(result.findings)

        groups = self.deduplicate(raw)
        merged = []
        for first_index, members in groups:
            finding = self.merge(members)
            categories = sorted({m.category for m in members}, key=lambda c: c.rank)
            # Primary category leads the union
            categories.remove(finding.category)
            categories.insert(0, finding.category)
            merged.append((first_index, finding, tuple(categories)))

        merged.sort(key=lambda item: (item[1].severity.rank, item[1].category.rank, item[0]))

        findings = [
            Finding(
                id=index,
                description=finding.description,
                severity=finding.severity,
                category=finding.category,
                location=finding.location,
                details=finding.details,
                suggestion=finding.suggestion,
                categories=categories,
            )
            for index, (_, finding, categories) in enumerate(merged, start=1)
        ]

        self.logger.info(
            f"Aggregated {len(raw)} raw findings into {len(findings)} "
            f"({len(raw) - len(findings)} duplicates merged, {len(incomplete)} categories incomplete)"
        )

        return Report(
            date=(day or Date.today()).isoformat(),
            scope=scope,
            context=context,
            findings=findings,
            incomplete=incomplete,
        )
