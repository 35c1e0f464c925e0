"""Configuration for the review workflow."""

from dataclasses import dataclass
from typing import Optional
import os


@dataclass
class WorkflowConfig:
    """Configuration for a review workflow run."""

    # Persisted state
    runs_dir: str = ".reviews"       # Run directories live here, one per date
    git_root: Optional[str] = None   # Defaults to the current directory

    # Analysis
    max_parallel_analyzers: int = 7  # One per category
    dedupe_threshold: float = 0.5    # Description token overlap for "same root cause"

    # Triage
    classifier: str = "heuristic"    # heuristic, agent

    # Execution
    max_parallel_units: int = 4      # Concurrent mechanical units of work
    max_repair_attempts: int = 5     # diagnose -> fix -> retry iterations per gate
    verify_timeout: Optional[float] = None  # Seconds; None waits indefinitely
    commit_message_prefix: str = "review: "

    @classmethod
    def from_env(cls) -> "WorkflowConfig":
        """Create config from environment variables."""
        timeout = os.environ.get("REVIEW_VERIFY_TIMEOUT")
        return cls(
            runs_dir=os.environ.get("REVIEW_RUNS_DIR", ".reviews"),
            git_root=os.environ.get("REVIEW_GIT_ROOT") or None,
            max_parallel_analyzers=int(os.environ.get("REVIEW_MAX_PARALLEL_ANALYZERS", "7")),
            dedupe_threshold=float(os.environ.get("REVIEW_DEDUPE_THRESHOLD", "0.5")),
            classifier=os.environ.get("REVIEW_CLASSIFIER", "heuristic"),
            max_parallel_units=int(os.environ.get("REVIEW_MAX_PARALLEL", "4")),
            max_repair_attempts=int(os.environ.get("REVIEW_MAX_REPAIR_ATTEMPTS", "5")),
            verify_timeout=float(timeout) if timeout else None,
            commit_message_prefix=os.environ.get("REVIEW_COMMIT_PREFIX", "review: "),
        )


@dataclass
class BatchingRules:
    """Rules for grouping findings into batches during triage."""

    # Mechanical batches
    min_batch_size: int = 3
    max_batch_size: int = 8
    theme_threshold: float = 0.3      # Description overlap to share a theme

    # Architectural batches
    max_architectural_batch: int = 2  # Pairs only for tightly coupled refactors
    coupling_threshold: float = 0.5   # Overlap needed to pair architectural findings

    # Foundation detection
    unblock_threshold: float = 0.3    # Overlap for "resolving X needs Y first"

