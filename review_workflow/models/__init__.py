"""Data models for the review workflow."""

from .finding import (
    Severity,
    Category,
    Location,
    RawFinding,
    AnalyzerResult,
    Finding,
    ScanContext,
    Report,
    SEVERITY_ORDER,
)
from .plan import (
    Complexity,
    Dependency,
    Classification,
    WontFixDecision,
    Batch,
    Plan,
    slugify,
)
from .progress import (
    BatchStatus,
    BatchProgress,
    ProgressCounts,
    Progress,
    FindingChange,
    BatchResolutionLog,
    Handoff,
    StepOutcome,
)
from .lifecycle import (
    validate_plan,
    validate_log,
    validate_progress,
    initial_progress,
    rebuild_progress,
)

__all__ = [
    "Severity",
    "Category",
    "Location",
    "RawFinding",
    "AnalyzerResult",
    "Finding",
    "ScanContext",
    "Report",
    "SEVERITY_ORDER",
    "Complexity",
    "Dependency",
    "Classification",
    "WontFixDecision",
    "Batch",
    "Plan",
    "slugify",
    "BatchStatus",
    "BatchProgress",
    "ProgressCounts",
    "Progress",
    "FindingChange",
    "BatchResolutionLog",
    "Handoff",
    "StepOutcome",
    "validate_plan",
    "validate_log",
    "validate_progress",
    "initial_progress",
    "rebuild_progress",
]
