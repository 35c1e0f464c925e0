"""Workflow orchestration: route each invocation to the component it needs.

    review  → report.md           (Scope & Context, analyzers, aggregator)
    triage  → plan.md, progress.md
    resolve → one batch, or the finalizer once nothing is outstanding
    complete→ finalizer (explicit close-out)

Every step ends in exactly one handoff. State is read fresh from the run
directory on every call; nothing is held across invocations.
"""

import asyncio
from datetime import date as Date
from pathlib import Path
from typing import Callable, Optional

from ..config import WorkflowConfig, BatchingRules
from ..errors import DocumentFormatError, InvariantViolation, MissingDocumentError
from ..models import Handoff, Plan, StepOutcome, rebuild_progress
from ..pipeline.aggregate import FindingAggregator
from ..pipeline.analyze import Analyzer, AgentAnalyzer, run_analyzers
from ..pipeline.approval import Approver, ConsoleApprover
from ..pipeline.classify import build_classifier
from ..pipeline.scope import ScopeResolver
from ..pipeline.triage import ApprovalSession, DraftPlan, TriagePlanner, run_triage
from ..tools import GitTool, RunDirectory, RunStore
from ..utils import SimilarityHeuristic, calculate_metrics, format_metrics_report, get_logger
from .executor import BatchExecutor, build_executor
from .finalize import CompletionFinalizer


def next_handoff(run: RunDirectory) -> StepOutcome:
    """Where a run stands and which command moves it forward."""
    if not run.has_report():
        raise MissingDocumentError("report.md", "review")
    if not run.has_plan():
        return StepOutcome(Handoff.TRIAGE, "Report written. Run `review-workflow triage` to plan the fixes.")

    progress = run.read_progress()
    if progress.is_complete:
        return StepOutcome(Handoff.DONE, f"Run completed on {progress.completed}.")

    current = progress.current
    if current is None:
        return StepOutcome(
            Handoff.FINALIZE,
            "All batches resolved. Run `review-workflow resolve` (or `review-workflow complete`) to finish the run.",
        )
    return StepOutcome(
        Handoff.RESOLVE,
        f"Run `review-workflow resolve` for batch {current.number}: {current.name}.",
        batch_number=current.number,
    )


def render_status(run: RunDirectory) -> str:
    """Metrics, batch statuses and the next handoff of a run."""
    report = run.read_report()
    progress = run.read_progress() if run.has_progress() else None
    lines = [f"Run: {run.path}", "", format_metrics_report(calculate_metrics(report, progress))]
    if progress is not None:
        lines.extend(["", "### Batches"])
        for entry in progress.entries:
            commit = f" ({entry.commit})" if entry.commit else ""
            lines.append(f"- {entry.number}. {entry.name}: {entry.status.value}{commit}")
    lines.extend(["", next_handoff(run).message])
    return "\n".join(lines)


class ReviewWorkflow:
    """
    Entry points for each CLI command.

    Components are built lazily from the config so that tests can inject
    fakes for the parts that talk to agents, git or the terminal.
    """

    def __init__(
        self,
        config: Optional[WorkflowConfig] = None,
        rules: Optional[BatchingRules] = None,
        work_dir: Optional[Path] = None,
        approver: Optional[Approver] = None,
        input_fn: Callable[[str], str] = input,
        output_fn: Callable[[str], None] = print,
        day: Optional[Date] = None,
    ):
        self.config = config or WorkflowConfig()
        self.rules = rules or BatchingRules()
        self.work_dir = Path(work_dir or self.config.git_root or Path.cwd())
        self.input_fn = input_fn
        self.output_fn = output_fn
        self.approver = approver or ConsoleApprover(input_fn, output_fn)
        self.day = day
        self.store = RunStore(self.work_dir / self.config.runs_dir)
        self.logger = get_logger()

    @property
    def today(self) -> str:
        return (self.day or Date.today()).isoformat()

    # review

    def review(self, path: Optional[str] = None, analyzer: Optional[Analyzer] = None) -> StepOutcome:
        """
        Resolve scope and context, run the analyzers, write report.md.

        Args:
            path: Scope argument; prompts when absent
            analyzer: Analyzer implementation (default: agent analyzer)

        Returns:
            StepOutcome handing off to triage
        """
        resolver = ScopeResolver(self.input_fn, self.output_fn, base_dir=self.work_dir)
        scope = resolver.resolve(path)
        context = resolver.collect_context()

        results = asyncio.run(run_analyzers(
            analyzer or AgentAnalyzer(),
            scope,
            context,
            max_parallel=self.config.max_parallel_analyzers,
        ))
        aggregator = FindingAggregator(SimilarityHeuristic(threshold=self.config.dedupe_threshold))
        report = aggregator.aggregate(results, scope.display, context, day=self.day)

        run = self.store.create(self.day)
        run.write_report(report)
        summary = ", ".join(f"{count} {severity.value}" for severity, count in report.count_by_severity().items())
        return StepOutcome(
            Handoff.TRIAGE,
            f"Report written to {run.report_path} ({len(report.findings)} findings: {summary}). "
            f"Run `review-workflow triage` to plan the fixes.",
        )

    # triage

    def _console_approval(self, draft: DraftPlan) -> Optional[Plan]:
        return ApprovalSession(draft, self.input_fn, self.output_fn).run()

    def triage(
        self,
        run_dir: Optional[str] = None,
        force: bool = False,
        approve: Optional[Callable[[DraftPlan], Optional[Plan]]] = None,
    ) -> StepOutcome:
        run = self.store.resolve(run_dir)
        planner = TriagePlanner(classifier=build_classifier(self.config.classifier), rules=self.rules)
        return run_triage(run, planner, approve or self._console_approval, force=force, day=self.day)

    # resolve / complete

    def executor(self, run: RunDirectory) -> BatchExecutor:
        executor = build_executor(run, self.work_dir, self.approver, self.config)
        executor.day = self.day
        return executor

    def finalizer(self, run: RunDirectory) -> CompletionFinalizer:
        return CompletionFinalizer(
            run,
            self.approver,
            GitTool(self.work_dir),
            config=self.config,
            day=self.day,
            output_fn=self.output_fn,
        )

    def resolve(self, run_dir: Optional[str] = None) -> StepOutcome:
        """Execute the next batch, or finalize when nothing is outstanding."""
        run = self.store.resolve(run_dir)
        handoff = next_handoff(run)
        if handoff.handoff == Handoff.TRIAGE:
            raise MissingDocumentError("plan.md", "triage")
        if handoff.handoff == Handoff.RESOLVE:
            return asyncio.run(self.executor(run).execute())
        return self.finalizer(run).finalize()

    def complete(self, run_dir: Optional[str] = None) -> StepOutcome:
        """Finalize now, asking about any outstanding batches."""
        run = self.store.resolve(run_dir)
        return self.finalizer(run).finalize()

    # status

    def status(self, run_dir: Optional[str] = None) -> str:
        return render_status(self.store.resolve(run_dir))

    def rebuild(self, run_dir: Optional[str] = None) -> StepOutcome:
        """
        Regenerate progress.md from plan.md and the batch logs.

        A closed run stays closed: its completion date carries over when the
        existing progress.md is still readable.
        """
        run = self.store.resolve(run_dir)
        plan = run.read_plan()
        closed_on = None
        if run.has_progress():
            try:
                closed_on = run.read_progress().completed
            except (DocumentFormatError, InvariantViolation) as e:
                self.logger.warning(f"Existing progress.md unreadable, rebuilding from scratch: {e}")

        progress = rebuild_progress(plan, run.read_batch_logs(), self.today, closed_on=closed_on)
        run.write_progress(progress)
        self.logger.info(f"Rebuilt {run.progress_path}")
        return next_handoff(run)
