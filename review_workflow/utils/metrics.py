"""Metrics calculation utilities for review runs."""

from dataclasses import dataclass
from typing import Optional

from ..models import Report, Progress, Severity, BatchStatus


@dataclass
class RunMetrics:
    """Run metrics calculated from the report and current progress."""

    # Finding counts
    total_findings: int = 0
    critical_count: int = 0
    important_count: int = 0
    minor_count: int = 0
    incomplete_categories: int = 0

    # Resolution counts
    resolved: int = 0
    wont_fix: int = 0
    remaining: int = 0
    deferred: int = 0

    # Batch counts
    total_batches: int = 0
    done_batches: int = 0

    # Derived
    resolution_rate: float = 0.0  # Resolved / (Total - Won't fix)

    def __post_init__(self):
        """Calculate derived metrics."""
        actionable = self.total_findings - self.wont_fix
        if actionable > 0:
            self.resolution_rate = self.resolved / actionable


def calculate_metrics(
    report: Report,
    progress: Optional[Progress] = None
) -> RunMetrics:
    """
    Calculate run metrics from the report and, if triaged, the progress.

    Args:
        report: The persisted review report
        progress: Current progress (None before triage)

    Returns:
        RunMetrics object with calculated statistics
    """
    by_severity = report.count_by_severity()
    metrics = RunMetrics(
        total_findings=len(report.findings),
        critical_count=by_severity[Severity.CRITICAL],
        important_count=by_severity[Severity.IMPORTANT],
        minor_count=by_severity[Severity.MINOR],
        incomplete_categories=len(report.incomplete),
    )

    if progress is None:
        metrics.remaining = metrics.total_findings
        return metrics

    counts = progress.counts
    return RunMetrics(
        total_findings=metrics.total_findings,
        critical_count=metrics.critical_count,
        important_count=metrics.important_count,
        minor_count=metrics.minor_count,
        incomplete_categories=metrics.incomplete_categories,
        resolved=counts.resolved,
        wont_fix=counts.wont_fix,
        remaining=counts.remaining,
        deferred=counts.deferred,
        total_batches=len(progress.entries),
        done_batches=sum(1 for e in progress.entries if e.status == BatchStatus.DONE),
    )


def format_metrics_report(metrics: RunMetrics) -> str:
    """
    Format metrics as a human-readable report.

    Args:
        metrics: RunMetrics object

    Returns:
        Formatted report string
    """
    lines = [
        "## Review Metrics",
        "",
        "### Findings",
        f"- Total: {metrics.total_findings}",
        f"- Critical: {metrics.critical_count}",
        f"- Important: {metrics.important_count}",
        f"- Minor: {metrics.minor_count}",
    ]

    if metrics.incomplete_categories:
        lines.append(f"- Incomplete categories: {metrics.incomplete_categories}")

    lines.extend([
        "",
        "### Resolution",
        f"- Resolved: {metrics.resolved}",
        f"- Won't fix: {metrics.wont_fix}",
        f"- Remaining: {metrics.remaining}",
        f"- Deferred: {metrics.deferred}",
        f"- Batches done: {metrics.done_batches}/{metrics.total_batches}",
        f"- Resolution rate: {metrics.resolution_rate:.1%}",
    ])

    return "\n".join(lines)
