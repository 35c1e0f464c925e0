"""Completion Finalizer - close the run and report what happened."""

from datetime import date as Date
from typing import Callable, List, Optional, Protocol

from ..config import WorkflowConfig
from ..models import (
    BatchStatus,
    Handoff,
    Plan,
    Progress,
    Report,
    StepOutcome,
    validate_progress,
)
from ..pipeline.approval import Approver
from ..tools import RunDirectory
from ..utils import calculate_metrics, get_logger


class RunCommitter(Protocol):
    def commit_paths(self, paths, message: str) -> str:
        ...


def render_summary(report: Report, plan: Plan, progress: Progress) -> str:
    """
    Final summary of a run.

    Won't-fix rationales are quoted verbatim from the plan; deferred batches
    list their findings; commits are listed in batch order.
    """
    counts = progress.counts
    metrics = calculate_metrics(report, progress)
    lines = [
        "# Review Complete",
        "",
        f"- Resolved: {counts.resolved}",
        f"- Won't fix: {counts.wont_fix}",
        f"- Remaining: {counts.remaining}",
        f"- Deferred: {counts.deferred}",
        f"- Total: {counts.total}",
        f"- Resolution rate: {metrics.resolution_rate:.1%}",
        "",
        "## Won't Fix",
    ]
    if not plan.wont_fix:
        lines.append("None.")
    for decision in plan.wont_fix:
        lines.append(f"- #{decision.finding_id} {report.get(decision.finding_id).description}: {decision.rationale}")

    lines.extend(["", "## Deferred"])
    deferred = [e for e in progress.entries if e.status == BatchStatus.DEFERRED]
    if not deferred:
        lines.append("None.")
    for entry in deferred:
        lines.append(f"- Batch {entry.number}: {entry.name}")
        for fid in entry.finding_ids:
            lines.append(f"  - #{fid} {report.get(fid).description}")

    lines.extend(["", "## Commits"])
    if not progress.commits:
        lines.append("None.")
    for number, sha in progress.commits:
        lines.append(f"- Batch {number}: {sha}")
    return "\n".join(lines)


class CompletionFinalizer:
    """
    Closes out a run.

    Outstanding batches need an explicit choice: continue resolving, or close
    out and defer them. A run that is already complete only prints its
    summary again.
    """

    def __init__(
        self,
        run: RunDirectory,
        approver: Approver,
        git: RunCommitter,
        config: Optional[WorkflowConfig] = None,
        day: Optional[Date] = None,
        output_fn: Callable[[str], None] = print,
    ):
        self.run = run
        self.approver = approver
        self.git = git
        self.config = config or WorkflowConfig()
        self.day = day
        self.output_fn = output_fn
        self.logger = get_logger()

    def finalize(self) -> StepOutcome:
        """
        Finish the run.

        Returns:
            DONE once closed, or RESOLVE if the user chose to continue
        """
        report = self.run.read_report()
        plan = self.run.read_plan()
        progress = self.run.read_progress()
        validate_progress(plan, progress)

        if progress.is_complete:
            self.output_fn(render_summary(report, plan, progress))
            return StepOutcome(Handoff.DONE, f"Run {self.run.name} was completed on {progress.completed}.")

        outstanding = progress.outstanding
        if outstanding:
            if not self.approver.confirm_close_out(outstanding):
                current = progress.current
                return StepOutcome(
                    Handoff.RESOLVE,
                    f"Continuing. Run `review-workflow resolve` for batch {current.number}: {current.name}.",
                    batch_number=current.number,
                )
            self._defer(progress, outstanding)

        today = (self.day or Date.today()).isoformat()
        progress.completed = today
        progress.updated = today
        validate_progress(plan, progress)
        self.run.write_progress(progress)

        summary = render_summary(report, plan, progress)
        self.output_fn(summary)

        sha = self.git.commit_paths(
            [self.run.path],
            f"{self.config.commit_message_prefix}complete review run {self.run.name}",
        )
        self.logger.info(f"Run {self.run.name} closed in {sha}")
        return StepOutcome(Handoff.DONE, f"Run {self.run.name} complete; run documents committed as {sha}.", commit=sha)

    def _defer(self, progress: Progress, outstanding: List) -> None:
        for entry in outstanding:
            entry.status = BatchStatus.DEFERRED
        self.logger.info(f"Deferred {len(outstanding)} batches")
