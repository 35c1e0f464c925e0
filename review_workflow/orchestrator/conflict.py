"""Conflict detection between concurrently executed units of work."""

from typing import Dict, List, Set, Tuple
from collections import defaultdict

from ..pipeline.units import UnitResult


class ConflictDetector:
    """
    Detects units of work whose edits touched the same files.

    Units in one mechanical batch run concurrently against one working tree,
    so two units writing the same file may have clobbered each other. Every
    overlap must be reconciled before the batch is verified.
    """

    def __init__(self):
        self._file_to_units: Dict[str, Set[int]] = defaultdict(set)

    def analyze(self, results: List[UnitResult]) -> None:
        """
        Index changed files by unit.

        Args:
            results: One result per executed unit, in unit order
        """
        self._file_to_units.clear()
        for index, result in enumerate(results):
            for file_path in result.changed_files:
                self._file_to_units[file_path].add(index)

    def find_conflict_groups(self, results: List[UnitResult]) -> List[Tuple[List[int], List[str]]]:
        """
        Group units with transitive file overlaps.

        Uses union-find over the file index.

        Returns:
            List of (unit indexes, shared files) per conflict group
        """
        self.analyze(results)
        parent = list(range(len(results)))

        def find(x):
            if parent[x] != x:
                parent[x] = find(parent[x])
            return parent[x]

        def union(x, y):
            px, py = find(x), find(y)
            if px != py:
                parent[max(px, py)] = min(px, py)

        shared_files = [f for f, units in self._file_to_units.items() if len(units) > 1]
        for file_path in shared_files:
            units = sorted(self._file_to_units[file_path])
            for other in units[1:]:
                union(units[0], other)

        groups: Dict[int, List[int]] = defaultdict(list)
        for index in range(len(results)):
            groups[find(index)].append(index)

        conflict_groups = []
        for root in sorted(groups):
            members = groups[root]
            if len(members) < 2:
                continue
            files = sorted(f for f in shared_files if self._file_to_units[f] & set(members))
            conflict_groups.append((members, files))
        return conflict_groups
