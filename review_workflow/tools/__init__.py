"""Tools for the review workflow."""

from .storage_tool import StorageTool
from .git_tool import GitTool
from .verify import VerificationRunner, VerificationResult
from .run_store import RunStore, RunDirectory
from .documents import (
    render_report,
    parse_report,
    render_plan,
    parse_plan,
    render_progress,
    parse_progress,
    render_batch_log,
    parse_batch_log,
)

__all__ = [
    "StorageTool",
    "GitTool",
    "VerificationRunner",
    "VerificationResult",
    "RunStore",
    "RunDirectory",
    "render_report",
    "parse_report",
    "render_plan",
    "parse_plan",
    "render_progress",
    "parse_progress",
    "render_batch_log",
    "parse_batch_log",
]
