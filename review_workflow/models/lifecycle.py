"""Lifecycle invariants and the progress projection.

Report, plan and batch logs are write-once; progress is a projection that
can always be rebuilt from them.
"""

from collections import Counter
from typing import List, Optional

from ..errors import InvariantViolation
from .finding import Report
from .plan import Plan
from .progress import BatchProgress, BatchResolutionLog, BatchStatus, Progress


def validate_plan(report: Report, plan: Plan) -> None:
    """
    Every report finding is in exactly one batch or the won't-fix set, and
    the plan references no finding the report does not have.

    Raises:
        InvariantViolation: On any unknown, missing or duplicated finding
    """
    known = set(report.ids)
    placed = Counter(plan.batched_ids + plan.wont_fix_ids)

    unknown = sorted(set(placed) - known)
    if unknown:
        raise InvariantViolation(f"Plan references findings not in the report: {unknown}")

    unblocked = sorted({fid for b in plan.batches for fid in b.unblocks} - known)
    if unblocked:
        raise InvariantViolation(f"Plan unblocks findings not in the report: {unblocked}")

    duplicated = sorted(fid for fid, count in placed.items() if count > 1)
    if duplicated:
        raise InvariantViolation(f"Findings placed more than once: {duplicated}")

    unassigned = sorted(known - set(placed))
    if unassigned:
        raise InvariantViolation(f"Findings neither batched nor won't-fix: {unassigned}")

    empty = [b.number for b in plan.batches if not b.finding_ids]
    if empty:
        raise InvariantViolation(f"Empty batches in plan: {empty}")

    numbers = [b.number for b in plan.batches]
    if numbers != list(range(1, len(numbers) + 1)):
        raise InvariantViolation(f"Batch numbers must be 1..N in order, got {numbers}")


def validate_log(plan: Plan, log: BatchResolutionLog) -> None:
    """A resolution log lists exactly the finding ids of its batch."""
    batch = plan.get_batch(log.number)
    if sorted(log.finding_ids) != sorted(batch.finding_ids):
        raise InvariantViolation(
            f"Batch {log.number} log lists {sorted(log.finding_ids)} "
            f"but the plan has {sorted(batch.finding_ids)}"
        )


def validate_progress(plan: Plan, progress: Progress) -> None:
    """
    Progress mirrors the plan, and the status column is well formed:
    at most one `next`, everything before it done, everything after it
    pending or deferred.
    """
    if [(e.number, sorted(e.finding_ids)) for e in progress.entries] != \
            [(b.number, sorted(b.finding_ids)) for b in plan.batches]:
        raise InvariantViolation("progress.md batches do not match plan.md")
    if progress.wont_fix != len(plan.wont_fix):
        raise InvariantViolation(
            f"progress.md counts {progress.wont_fix} won't-fix, plan.md has {len(plan.wont_fix)}"
        )

    statuses = [e.status for e in progress.entries]
    if statuses.count(BatchStatus.NEXT) > 1:
        raise InvariantViolation("More than one batch is marked next")
    if BatchStatus.NEXT in statuses:
        cursor = statuses.index(BatchStatus.NEXT)
        if any(s != BatchStatus.DONE for s in statuses[:cursor]):
            raise InvariantViolation("A batch before the next batch is not done")
        if any(s not in (BatchStatus.PENDING, BatchStatus.DEFERRED) for s in statuses[cursor + 1:]):
            raise InvariantViolation("A batch after the next batch is not pending")

    if not progress.counts.balanced:
        raise InvariantViolation(f"Unbalanced progress counts: {progress.counts}")


def initial_progress(plan: Plan, today: str) -> Progress:
    """Progress right after plan approval: first batch next, the rest pending."""
    entries = [
        BatchProgress(
            number=batch.number,
            name=batch.name,
            finding_ids=list(batch.finding_ids),
            status=BatchStatus.NEXT if index == 0 else BatchStatus.PENDING,
        )
        for index, batch in enumerate(plan.batches)
    ]
    return Progress(entries=entries, wont_fix=len(plan.wont_fix), updated=today)


def rebuild_progress(
    plan: Plan,
    logs: List[BatchResolutionLog],
    today: str,
    closed_on: Optional[str] = None,
) -> Progress:
    """
    Recompute progress from the write-once documents.

    Batches with a resolution log are done. If the run was closed out, every
    other batch is deferred; otherwise the first unresolved batch is next.
    """
    logged = {log.number: log for log in logs}
    for log in logs:
        validate_log(plan, log)

    progress = initial_progress(plan, today)
    promoted = False
    for entry in progress.entries:
        log = logged.get(entry.number)
        if log is not None:
            entry.status = BatchStatus.DONE
            entry.commit = log.commit
        elif closed_on is not None:
            entry.status = BatchStatus.DEFERRED
        elif not promoted:
            entry.status = BatchStatus.NEXT
            promoted = True
        else:
            entry.status = BatchStatus.PENDING

    progress.completed = closed_on
    return progress
