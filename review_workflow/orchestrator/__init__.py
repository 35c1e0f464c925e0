"""Batch sequencing and execution.

This module provides:
- DependencyAnalyzer: Foundation/unblock graph between findings
- ConflictDetector: Detects concurrent units editing the same files
- BatchExecutor: Resolves one batch per invocation
- CompletionFinalizer: Closes out a run

Command routing lives in `review_workflow.orchestrator.workflow`.
"""

from .dependency import DependencyAnalyzer
from .conflict import ConflictDetector
from .executor import BatchExecutor, build_executor, commit_message
from .finalize import CompletionFinalizer, render_summary

__all__ = [
    "DependencyAnalyzer",
    "ConflictDetector",
    "BatchExecutor",
    "build_executor",
    "commit_message",
    "CompletionFinalizer",
    "render_summary",
]
