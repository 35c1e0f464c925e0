"""Data models for batch resolution state (progress, logs, handoffs)."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .plan import Complexity


class BatchStatus(Enum):
    """Status of a batch in the progress table."""
    PENDING = "pending"     # Waiting its turn
    NEXT = "next"           # The batch the next invocation works on
    DONE = "done"           # Resolved and committed
    DEFERRED = "deferred"   # Closed out early, never automatic


@dataclass
class BatchProgress:
    """One row of the Batch Status table."""
    number: int
    name: str
    finding_ids: List[int]
    status: BatchStatus = BatchStatus.PENDING
    commit: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status in (BatchStatus.PENDING, BatchStatus.NEXT)


@dataclass(frozen=True)
class ProgressCounts:
    """Counts derived from batch statuses; never stored independently."""
    resolved: int
    wont_fix: int
    remaining: int
    deferred: int
    total: int

    @property
    def balanced(self) -> bool:
        return self.resolved + self.wont_fix + self.remaining + self.deferred == self.total


@dataclass
class Progress:
    """The single rewritten document: the resumability checkpoint."""
    entries: List[BatchProgress] = field(default_factory=list)
    wont_fix: int = 0
    updated: str = ""
    completed: Optional[str] = None

    @property
    def counts(self) -> ProgressCounts:
        resolved = remaining = deferred = 0
        for entry in self.entries:
            size = len(entry.finding_ids)
            if entry.status == BatchStatus.DONE:
                resolved += size
            elif entry.status == BatchStatus.DEFERRED:
                deferred += size
            else:
                remaining += size
        total = resolved + remaining + deferred + self.wont_fix
        return ProgressCounts(
            resolved=resolved,
            wont_fix=self.wont_fix,
            remaining=remaining,
            deferred=deferred,
            total=total,
        )

    @property
    def current(self) -> Optional[BatchProgress]:
        """First `next` batch, falling back to the first `pending` one."""
        for entry in self.entries:
            if entry.status == BatchStatus.NEXT:
                return entry
        for entry in self.entries:
            if entry.status == BatchStatus.PENDING:
                return entry
        return None

    @property
    def outstanding(self) -> List[BatchProgress]:
        return [e for e in self.entries if e.is_open]

    @property
    def is_complete(self) -> bool:
        return self.completed is not None

    def get(self, number: int) -> BatchProgress:
        for entry in self.entries:
            if entry.number == number:
                return entry
        raise KeyError(number)

    @property
    def commits(self) -> List[Tuple[int, str]]:
        return [(e.number, e.commit) for e in self.entries if e.commit]


@dataclass(frozen=True)
class FindingChange:
    """What was actually changed for one finding."""
    finding_id: int
    description: str


@dataclass
class BatchResolutionLog:
    """Append-only record of one executed batch."""
    number: int
    name: str
    date: str
    kind: Complexity
    commit: str
    changes: List[FindingChange] = field(default_factory=list)
    verification_output: str = ""
    notes: List[str] = field(default_factory=list)

    @property
    def finding_ids(self) -> List[int]:
        return [c.finding_id for c in self.changes]


class Handoff(Enum):
    """Where control goes after a workflow step."""
    TRIAGE = "triage"       # Run `review-workflow triage`
    RESOLVE = "resolve"     # Run `review-workflow resolve` for the next batch
    FINALIZE = "finalize"   # Run `review-workflow resolve` to close the run
    DONE = "done"           # Terminal state


@dataclass
class StepOutcome:
    """Result of one component invocation: exactly one handoff."""
    handoff: Handoff
    message: str
    batch_number: Optional[int] = None
    commit: Optional[str] = None
