"""Batch Executor - resolve exactly one batch per invocation.

    locate batch → pre-gate → work → post-gate (+repair) → commit → log → progress

The progress Status column decides which batch runs. Any failure before the
commit leaves every persisted document untouched, so the same invocation
can simply be repeated. A batch that already has a resolution log is never
redone; progress.md is rebuilt from the logs instead.
"""

import asyncio
from datetime import date as Date
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

from ..config import WorkflowConfig
from ..errors import (
    ConflictUnresolved,
    PreconditionFailed,
    VerificationFailed,
    WorkflowError,
)
from ..models import (
    Batch,
    BatchResolutionLog,
    BatchStatus,
    Finding,
    FindingChange,
    Handoff,
    Plan,
    Progress,
    StepOutcome,
    rebuild_progress,
    validate_log,
    validate_progress,
)
from ..pipeline.approval import Approver
from ..pipeline.units import (
    AgentImplementer,
    ImplementationStep,
    Implementer,
    UnitOfWork,
    UnitResult,
    build_units,
)
from ..tools import GitTool, RunDirectory, VerificationResult, VerificationRunner
from ..utils import get_logger
from .conflict import ConflictDetector


class Verifier(Protocol):
    async def run(self, command: str) -> VerificationResult:
        ...


class Committer(Protocol):
    def commit_all(self, message: str, exclude=()) -> str:
        ...


def commit_message(prefix: str, batch: Batch) -> str:
    """One line naming the batch, then every finding id it resolves."""
    ids = ", ".join(f"#{i}" for i in batch.finding_ids)
    return f"{prefix}batch {batch.number}: {batch.name}\n\nResolves findings {ids}"


class BatchExecutor:
    """
    Executes the current batch of a run.

    Mechanical batches fan out into concurrent units of work; overlapping
    edits are reconciled before verification. Architectural batches get a
    design decision from the user and are implemented step by step with a
    verification after every step.
    """

    def __init__(
        self,
        run: RunDirectory,
        implementer: Implementer,
        approver: Approver,
        verifier: Verifier,
        git: Committer,
        config: Optional[WorkflowConfig] = None,
        day: Optional[Date] = None,
    ):
        self.run = run
        self.implementer = implementer
        self.approver = approver
        self.verifier = verifier
        self.git = git
        self.config = config or WorkflowConfig()
        self.day = day
        self.conflicts = ConflictDetector()
        self.logger = get_logger()

    @property
    def today(self) -> str:
        return (self.day or Date.today()).isoformat()

    def locate(self, plan: Plan, progress: Progress) -> Optional[Batch]:
        """The batch to work on, or None when nothing is outstanding."""
        if progress.is_complete:
            return None
        entry = progress.current
        if entry is None:
            return None
        return plan.get_batch(entry.number)

    async def execute(self) -> StepOutcome:
        """
        Resolve the current batch.

        Returns:
            StepOutcome handing off to the next batch or to the finalizer

        Raises:
            PreconditionFailed: Verification failed before any work
            ConflictUnresolved: Concurrent edits could not be reconciled
            VerificationFailed: Repair attempts exhausted after the work
        """
        plan = self.run.read_plan()
        progress = self.run.read_progress()
        validate_progress(plan, progress)

        batch = self.locate(plan, progress)
        if batch is None:
            self.logger.info("No outstanding batches")
            return StepOutcome(
                Handoff.FINALIZE,
                "All batches are resolved or deferred. Run `review-workflow resolve` "
                "(or `review-workflow complete`) to finish the run.",
            )

        if self.run.batch_log_path(batch).exists():
            return self._recover(plan, batch)

        report = self.run.read_report()
        findings = [report.get(fid) for fid in batch.finding_ids]
        command = plan.verification_command

        self.logger.info(f"Batch {batch.number}: {batch.name} ({batch.kind.value}, {len(findings)} findings)")

        # Pre-batch gate: the tree must be green before anything is touched
        baseline = await self.verifier.run(command)
        if not baseline.passed:
            raise PreconditionFailed(command, baseline.output, baseline.returncode)

        notes: List[str] = []
        if batch.is_mechanical:
            changes = await self._run_mechanical(findings, notes)
        else:
            changes = await self._run_architectural(batch, findings, command, notes)

        # Post-batch gate
        verification, attempts = await self._verify_with_repair(findings, command, notes)
        if attempts:
            notes.append(f"Verification passed after {attempts} repair attempt(s).")

        sha = self.git.commit_all(
            commit_message(self.config.commit_message_prefix, batch),
            exclude=[self.run.path],
        )

        log = BatchResolutionLog(
            number=batch.number,
            name=batch.name,
            date=self.today,
            kind=batch.kind,
            commit=sha,
            changes=[
                FindingChange(finding_id=f.id, description=changes.get(f.id) or self._fallback_change(f))
                for f in findings
            ],
            verification_output=verification.output,
            notes=notes,
        )
        validate_log(plan, log)
        self.run.write_batch_log(batch, log)

        self._advance(progress, batch.number, sha)
        validate_progress(plan, progress)
        self.run.write_progress(progress)

        return self._handoff(batch, sha, progress)

    def execute_sync(self) -> StepOutcome:
        """Synchronous wrapper for execute."""
        return asyncio.run(self.execute())

    def _handoff(self, batch: Batch, sha: str, progress: Progress) -> StepOutcome:
        following = progress.current
        if following is None:
            return StepOutcome(
                Handoff.FINALIZE,
                f"Batch {batch.number} committed as {sha}. All batches done. "
                "Run `review-workflow resolve` (or `review-workflow complete`) to finish the run.",
                batch_number=batch.number,
                commit=sha,
            )
        return StepOutcome(
            Handoff.RESOLVE,
            f"Batch {batch.number} committed as {sha}. "
            f"Run `review-workflow resolve` for batch {following.number}: {following.name}.",
            batch_number=batch.number,
            commit=sha,
        )

    def _recover(self, plan: Plan, batch: Batch) -> StepOutcome:
        """The batch was committed and logged but progress.md never caught up."""
        self.logger.warning(
            f"Batch {batch.number} already has a resolution log; rebuilding progress instead of redoing it"
        )
        progress = rebuild_progress(plan, self.run.read_batch_logs(), self.today)
        validate_progress(plan, progress)
        self.run.write_progress(progress)
        return self._handoff(batch, progress.get(batch.number).commit, progress)

    def _advance(self, progress: Progress, number: int, sha: str) -> None:
        entry = progress.get(number)
        entry.status = BatchStatus.DONE
        entry.commit = sha
        for other in progress.entries:
            if other.status == BatchStatus.NEXT:
                break
            if other.status == BatchStatus.PENDING:
                other.status = BatchStatus.NEXT
                break
        progress.updated = self.today

    @staticmethod
    def _fallback_change(finding: Finding) -> str:
        return f"Applied: {finding.suggestion or finding.description}"

    async def _run_mechanical(self, findings: List[Finding], notes: List[str]) -> Dict[int, str]:
        units = build_units(findings)
        semaphore = asyncio.Semaphore(self.config.max_parallel_units)

        async def limited(unit: UnitOfWork) -> UnitResult:
            async with semaphore:
                return await self.implementer.apply(unit)

        self.logger.info(f"Running {len(units)} units of work")
        results = await asyncio.gather(*(limited(u) for u in units))

        changes: Dict[int, str] = {}
        for result in results:
            changes.update(result.changes)

        for members, files in self.conflicts.find_conflict_groups(results):
            ids = ", ".join(f"#{fid}" for i in members for fid in units[i].finding_ids)
            self.logger.warning(f"Conflicting edits to {', '.join(files)} from units fixing {ids}")
            resolved = await self.implementer.reconcile([units[i] for i in members], files)
            if not resolved:
                raise ConflictUnresolved(files)
            notes.append(f"Reconciled concurrent edits to {', '.join(files)} ({ids}).")
        return changes

    async def _run_architectural(
        self,
        batch: Batch,
        findings: List[Finding],
        command: str,
        notes: List[str],
    ) -> Dict[int, str]:
        options = await self.implementer.propose_designs(findings)
        if not options:
            raise WorkflowError(f"No design options were proposed for batch {batch.number}")
        if len(options) < 2:
            self.logger.warning(f"Only {len(options)} design option proposed for batch {batch.number}")

        choice = self.approver.choose_design(batch, options)
        self.logger.info(f"Design chosen: {choice.name}")
        notes.append(f"Design: {choice.name}. {choice.summary}")

        steps = await self.implementer.plan_steps(findings, choice)
        if not steps:
            steps = [ImplementationStep(description=choice.summary, finding_ids=list(batch.finding_ids))]

        changes: Dict[int, str] = {}
        for index, step in enumerate(steps, start=1):
            self.logger.info(f"Step {index}/{len(steps)}: {step.description}")
            result = await self.implementer.apply_step(step, choice)
            changes.update(result.changes)
            _, attempts = await self._verify_with_repair(findings, command, notes)
            suffix = f" ({attempts} repair attempt(s))" if attempts else ""
            notes.append(f"Step {index}: {step.description}{suffix}")
        return changes

    async def _verify_with_repair(
        self,
        findings: List[Finding],
        command: str,
        notes: List[str],
    ) -> Tuple[VerificationResult, int]:
        """
        Run verification, repairing and retrying on failure.

        Returns:
            (passing result, repair attempts used)

        Raises:
            VerificationFailed: If still failing after max_repair_attempts
        """
        result = await self.verifier.run(command)
        attempts = 0
        while not result.passed:
            if attempts >= self.config.max_repair_attempts:
                raise VerificationFailed(command, result.output, attempts)
            attempts += 1
            self.logger.warning(
                f"Verification failed (exit {result.returncode}); "
                f"repair attempt {attempts}/{self.config.max_repair_attempts}"
            )
            repair = await self.implementer.repair(findings, result)
            if repair.changed_files:
                notes.append(f"Repair {attempts}: adjusted {', '.join(repair.changed_files)}.")
            result = await self.verifier.run(command)
        return result, attempts


def build_executor(
    run: RunDirectory,
    work_dir: Path,
    approver: Approver,
    config: Optional[WorkflowConfig] = None,
) -> BatchExecutor:
    """Executor wired to the real agent implementer, git and verification command."""
    config = config or WorkflowConfig()
    return BatchExecutor(
        run=run,
        implementer=AgentImplementer(work_dir),
        approver=approver,
        verifier=VerificationRunner(work_dir, timeout=config.verify_timeout),
        git=GitTool(work_dir),
        config=config,
    )
