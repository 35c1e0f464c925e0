"""Data models for findings and the review report."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class Severity(Enum):
    """Finding severity levels, most severe first."""
    CRITICAL = "Critical"     # Correctness or safety hazards
    IMPORTANT = "Important"   # Structural problems that slow change
    MINOR = "Minor"           # Polish, naming, small cleanups

    @property
    def rank(self) -> int:
        """Sort key: lower is more severe."""
        return SEVERITY_ORDER.index(self)

    @classmethod
    def parse(cls, value: str) -> "Severity":
        """Normalize analyzer vocabulary onto the three tiers."""
        key = (value or "").strip().lower()
        if key in ("critical", "blocker", "high"):
            return cls.CRITICAL
        if key in ("important", "major", "medium"):
            return cls.IMPORTANT
        if key in ("minor", "low", "info", "trivial"):
            return cls.MINOR
        raise ValueError(f"Unknown severity: {value!r}")


SEVERITY_ORDER = [Severity.CRITICAL, Severity.IMPORTANT, Severity.MINOR]


class Category(Enum):
    """The seven analysis categories, in report order."""
    STRUCTURE = "structure"
    COUPLING = "coupling"
    DUPLICATION = "duplication"
    COMPLEXITY = "complexity"
    NAMING = "naming"
    DEAD_CODE = "dead_code"
    TESTABILITY = "testability"

    @property
    def rank(self) -> int:
        return list(Category).index(self)


@dataclass(frozen=True)
class Location:
    """File path plus optional line number."""
    path: str
    line: Optional[int] = None

    def __str__(self) -> str:
        if self.line is None:
            return self.path
        return f"{self.path}:{self.line}"

    @classmethod
    def parse(cls, text: str) -> "Location":
        text = text.strip()
        path, sep, line = text.rpartition(":")
        if sep and line.isdigit():
            return cls(path=path, line=int(line))
        return cls(path=text)


@dataclass
class RawFinding:
    """Analyzer output before aggregation - no id yet."""
    description: str
    severity: Severity
    category: Category
    location: Location
    details: str = ""
    suggestion: str = ""


@dataclass
class AnalyzerResult:
    """Outcome of one category analyzer."""
    category: Category
    findings: List[RawFinding] = field(default_factory=list)
    status: str = "ok"  # ok, failed
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status == "failed"


@dataclass(frozen=True)
class Finding:
    """A single reported issue. Immutable once written to the report."""
    id: int
    description: str
    severity: Severity
    category: Category
    location: Location
    details: str = ""
    suggestion: str = ""
    categories: Tuple[Category, ...] = ()  # union of source categories after merge

    @property
    def all_categories(self) -> Tuple[Category, ...]:
        return self.categories or (self.category,)


@dataclass
class ScanContext:
    """Free-text context gathered before analysis."""
    purpose: str = ""
    active_areas: str = ""
    pain_points: str = ""


@dataclass
class Report:
    """Ordered findings plus run metadata. Never mutated after persisting."""
    date: str
    scope: str
    context: ScanContext
    findings: List[Finding] = field(default_factory=list)
    incomplete: List[Tuple[Category, str]] = field(default_factory=list)  # (category, reason)

    def get(self, finding_id: int) -> Finding:
        for finding in self.findings:
            if finding.id == finding_id:
                return finding
        raise KeyError(finding_id)

    @property
    def ids(self) -> List[int]:
        return [f.id for f in self.findings]

    def count_by_severity(self) -> dict:
        counts = {severity: 0 for severity in SEVERITY_ORDER}
        for finding in self.findings:
            counts[finding.severity] += 1
        return counts
