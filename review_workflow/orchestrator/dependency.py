"""Dependency analysis between findings: which fixes unblock which."""

from dataclasses import replace
from typing import Dict, List, Optional, Set
from collections import defaultdict
import re

from ..config import BatchingRules
from ..models import Classification, Dependency, Finding
from ..utils import SimilarityHeuristic

FOUNDATION_PATTERNS = [
    r"\bintroduc\w*", r"\bshared\b", r"\bcentrali[sz]\w*", r"\bcommon\b",
    r"\bregistry\b", r"\bbase class\b", r"\bsingle source\b", r"\bunif\w*",
]


class DependencyAnalyzer:
    """
    Analyzes dependencies between findings for batch ordering.

    A finding is a foundation when it introduces shared structure AND at
    least one other finding's fix is blocked on it, i.e. the other finding
    either shares its root cause or lives in a file the foundation names.
    """

    def __init__(self, rules: Optional[BatchingRules] = None):
        self.rules = rules or BatchingRules()
        self.similarity = SimilarityHeuristic(threshold=self.rules.unblock_threshold)
        self._graph: Dict[int, Set[int]] = defaultdict(set)          # finding -> unblocks
        self._reverse_graph: Dict[int, Set[int]] = defaultdict(set)  # finding -> blocked by

    @staticmethod
    def introduces_shared_structure(finding: Finding) -> bool:
        text = f"{finding.description} {finding.suggestion}".lower()
        return any(re.search(p, text) for p in FOUNDATION_PATTERNS)

    def build_dependency_graph(self, findings: List[Finding]) -> None:
        """
        Build the unblock graph from the report's findings.

        Args:
            findings: Findings being triaged
        """
        self._graph.clear()
        self._reverse_graph.clear()

        for foundation in findings:
            if not self.introduces_shared_structure(foundation):
                continue
            text = f"{foundation.description} {foundation.details} {foundation.suggestion}"
            for other in findings:
                if other.id == foundation.id:
                    continue
                shared_root = self.similarity.same_root_cause(foundation, other)
                # Two foundations with one root cause: the earlier (more severe) leads
                if shared_root and self.introduces_shared_structure(other) and other.id < foundation.id:
                    shared_root = False
                if shared_root or self.similarity.mentions_path(text, other.location.path):
                    self._graph[foundation.id].add(other.id)
                    self._reverse_graph[other.id].add(foundation.id)

    def classify_dependencies(
        self,
        findings: List[Finding],
        classifications: Dict[int, Classification],
    ) -> Dict[int, Classification]:
        """
        Set the dependency axis on each classification.

        Args:
            findings: Findings being triaged
            classifications: Complexity classifications by finding id

        Returns:
            New classification map with foundation findings marked
        """
        self.build_dependency_graph(findings)
        result = {}
        for finding in findings:
            current = classifications[finding.id]
            unblocks = sorted(self._graph.get(finding.id, ()))
            if unblocks:
                reason = current.reason
                note = f"unblocks {', '.join(f'#{i}' for i in unblocks)}"
                result[finding.id] = replace(
                    current,
                    dependency=Dependency.FOUNDATION,
                    reason=f"{reason}; {note}" if reason else note,
                )
            else:
                result[finding.id] = replace(current, dependency=Dependency.INDEPENDENT)
        return result

    def topological_sort(self, finding_ids: List[int]) -> List[int]:
        """
        Return findings in dependency order (blockers first).

        Uses Kahn's algorithm; ties break by finding id.

        Args:
            finding_ids: Findings to order (edges outside this set are ignored)

        Returns:
            Ordered finding ids

        Raises:
            ValueError: If circular dependency detected
        """
        ids = set(finding_ids)
        in_degree = {fid: 0 for fid in ids}

        for fid in ids:
            for blocker in self._reverse_graph[fid]:
                if blocker in ids:
                    in_degree[fid] += 1

        queue = [fid for fid, degree in in_degree.items() if degree == 0]
        result = []

        while queue:
            queue.sort()
            current = queue.pop(0)
            result.append(current)

            for dependent in self._graph[current]:
                if dependent in in_degree:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        queue.append(dependent)

        if len(result) != len(ids):
            remaining = ids - set(result)
            raise ValueError(f"Circular dependency detected among findings: {sorted(remaining)}")

        return result

    def get_unblocks(self, finding_id: int) -> Set[int]:
        """Findings whose fix is blocked on this one."""
        return self._graph.get(finding_id, set()).copy()
