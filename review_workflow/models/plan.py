"""Data models for triage output: classifications, batches and the plan."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List


class Complexity(Enum):
    """How much design judgment a fix needs."""
    MECHANICAL = "mechanical"         # Renames, deletions, import/constant changes
    ARCHITECTURAL = "architectural"   # New abstractions, decomposition, data model


class Dependency(Enum):
    """Whether other fixes are blocked on this one."""
    FOUNDATION = "foundation"
    INDEPENDENT = "independent"


@dataclass(frozen=True)
class Classification:
    """Per-finding triage result along both axes."""
    finding_id: int
    complexity: Complexity
    dependency: Dependency = Dependency.INDEPENDENT
    reason: str = ""

    @property
    def is_foundation(self) -> bool:
        return self.dependency == Dependency.FOUNDATION


@dataclass(frozen=True)
class WontFixDecision:
    """A finding deliberately left alone, with its one-sentence rationale."""
    finding_id: int
    rationale: str


@dataclass
class Batch:
    """An ordered group of findings resolved together in one commit."""
    number: int
    name: str
    kind: Complexity
    finding_ids: List[int] = field(default_factory=list)
    unblocks: List[int] = field(default_factory=list)  # only for foundation batches

    @property
    def is_mechanical(self) -> bool:
        return self.kind == Complexity.MECHANICAL

    @property
    def slug(self) -> str:
        return slugify(self.name)

    @property
    def log_filename(self) -> str:
        return f"batch-{self.number}-{self.slug}.md"


@dataclass
class Plan:
    """Approved triage plan. Written once, after explicit approval."""
    verification_command: str
    created: str
    batches: List[Batch] = field(default_factory=list)
    wont_fix: List[WontFixDecision] = field(default_factory=list)
    classifications: Dict[int, Classification] = field(default_factory=dict)

    def get_batch(self, number: int) -> Batch:
        for batch in self.batches:
            if batch.number == number:
                return batch
        raise KeyError(number)

    @property
    def wont_fix_ids(self) -> List[int]:
        return [d.finding_id for d in self.wont_fix]

    @property
    def batched_ids(self) -> List[int]:
        return [fid for batch in self.batches for fid in batch.finding_ids]


def slugify(text: str, max_length: int = 40) -> str:
    """Lowercase, hyphen-separated slug suitable for a file name."""
    chars = []
    for ch in text.lower():
        if ch.isalnum():
            chars.append(ch)
        elif chars and chars[-1] != "-":
            chars.append("-")
    slug = "".join(chars).strip("-")[:max_length].rstrip("-")
    return slug or "batch"
