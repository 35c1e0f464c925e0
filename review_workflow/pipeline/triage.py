"""Triage Planner - turn the report into an approved, batched plan.

    report.md → classify → dependencies → won't-fix → batches → approval → plan.md

Nothing is persisted until the user explicitly approves. The initial
progress.md is written alongside the plan.
"""

import math
from dataclasses import dataclass, field, replace
from datetime import date as Date
from typing import Callable, Dict, List, Optional, Tuple

from ..config import BatchingRules
from ..errors import ApprovalRequired, WriteOnceViolation
from ..models import (
    Batch,
    Category,
    Classification,
    Complexity,
    Finding,
    Handoff,
    Plan,
    Report,
    StepOutcome,
    WontFixDecision,
    initial_progress,
    validate_plan,
)
from ..orchestrator.dependency import DependencyAnalyzer
from ..tools import RunDirectory, render_plan
from ..utils import SimilarityHeuristic, get_logger
from .classify import Classifier, HeuristicClassifier, HeuristicWontFixPolicy, WontFixPolicy


def _short(text: str, limit: int = 60) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[:limit - 3].rstrip() + "..."


def _theme_name(categories: List[Category]) -> str:
    labels = [c.value.replace("_", " ") for c in categories]
    if not labels:
        return "Mixed cleanup"
    if len(labels) == 1:
        name = labels[0]
    elif len(labels) == 2:
        name = f"{labels[0]} and {labels[1]}"
    else:
        name = "mixed"
    return f"{name.capitalize()} cleanup"


def _split(members: List[int], max_size: int) -> List[List[int]]:
    """Split into the fewest chunks of at most max_size, sized as evenly as possible."""
    chunks = math.ceil(len(members) / max_size)
    base, extra = divmod(len(members), chunks)
    result, start = [], 0
    for index in range(chunks):
        size = base + (1 if index < extra else 0)
        result.append(members[start:start + size])
        start += size
    return result


@dataclass
class DraftPlan:
    """
    A plan under review. Edits are allowed until approval.

    Finding placement is kept consistent on every edit: each finding is in
    exactly one batch or in the won't-fix set.
    """
    report: Report
    classifications: Dict[int, Classification]
    batches: List[Batch] = field(default_factory=list)
    wont_fix: List[WontFixDecision] = field(default_factory=list)
    verification_command: str = ""

    def _batch(self, number: int) -> Batch:
        for batch in self.batches:
            if batch.number == number:
                return batch
        raise ValueError(f"No batch {number}")

    def _finding(self, finding_id: int) -> Finding:
        try:
            return self.report.get(finding_id)
        except KeyError:
            raise ValueError(f"No finding #{finding_id}")

    def _detach(self, finding_id: int) -> None:
        for batch in self.batches:
            if finding_id in batch.finding_ids:
                batch.finding_ids.remove(finding_id)
        self.batches = [b for b in self.batches if b.finding_ids]
        for index, batch in enumerate(self.batches, start=1):
            batch.number = index
        self.wont_fix = [d for d in self.wont_fix if d.finding_id != finding_id]

    def move_finding(self, finding_id: int, batch_number: int) -> None:
        """Move a batched finding into another batch."""
        self._finding(finding_id)
        target = self._batch(batch_number)
        if finding_id in target.finding_ids:
            return
        if finding_id in [d.finding_id for d in self.wont_fix]:
            raise ValueError(f"#{finding_id} is won't-fix; use `fix` to restore it")
        self._detach(finding_id)
        target.finding_ids.append(finding_id)

    def mark_wont_fix(self, finding_id: int, rationale: str) -> None:
        """Promote a finding to won't-fix."""
        self._finding(finding_id)
        rationale = " ".join(rationale.split())
        if not rationale:
            raise ValueError("A won't-fix decision needs a one-sentence rationale")
        self._detach(finding_id)
        self.wont_fix.append(WontFixDecision(finding_id=finding_id, rationale=rationale))
        self.wont_fix.sort(key=lambda d: d.finding_id)

    def restore(self, finding_id: int, batch_number: Optional[int] = None) -> None:
        """Demote a won't-fix candidate back into a batch (a new one if none given)."""
        finding = self._finding(finding_id)
        if finding_id not in [d.finding_id for d in self.wont_fix]:
            raise ValueError(f"#{finding_id} is not marked won't-fix")
        if batch_number is not None:
            target = self._batch(batch_number)
            self._detach(finding_id)
            target.finding_ids.append(finding_id)
            return
        self._detach(finding_id)
        classification = self.classifications.get(finding_id)
        kind = classification.complexity if classification else Complexity.ARCHITECTURAL
        self.batches.append(Batch(
            number=len(self.batches) + 1,
            name=f"Refactor: {_short(finding.description)}",
            kind=kind,
            finding_ids=[finding_id],
        ))

    def reorder(self, batch_number: int, position: int) -> None:
        """Move a batch to a new 1-based position."""
        batch = self._batch(batch_number)
        if not 1 <= position <= len(self.batches):
            raise ValueError(f"Position must be between 1 and {len(self.batches)}")
        self.batches.remove(batch)
        self.batches.insert(position - 1, batch)
        for index, b in enumerate(self.batches, start=1):
            b.number = index

    def set_verification_command(self, command: str) -> None:
        self.verification_command = command.strip()

    def to_plan(self, created: Optional[str] = None) -> Plan:
        return Plan(
            verification_command=self.verification_command,
            created=created or Date.today().isoformat(),
            batches=[replace(b, finding_ids=list(b.finding_ids), unblocks=list(b.unblocks)) for b in self.batches],
            wont_fix=list(self.wont_fix),
            classifications=dict(self.classifications),
        )

    def approve(self, created: Optional[str] = None) -> Plan:
        """
        Freeze the draft into a Plan.

        Raises:
            ApprovalRequired: If no verification command was given
            InvariantViolation: If findings are lost or duplicated
        """
        if not self.verification_command:
            raise ApprovalRequired("A verification command is required before the plan can be approved")
        plan = self.to_plan(created)
        validate_plan(self.report, plan)
        return plan

    def describe(self) -> str:
        """Human-readable plan with finding descriptions."""
        lines = []
        for batch in self.batches:
            lines.append(f"Batch {batch.number}: {batch.name} [{batch.kind.value}]")
            for fid in batch.finding_ids:
                finding = self.report.get(fid)
                reason = self.classifications[fid].reason if fid in self.classifications else ""
                lines.append(f"  #{fid} [{finding.severity.value}] {finding.description}")
                if reason:
                    lines.append(f"      ({reason})")
            if batch.unblocks:
                lines.append(f"  unblocks: {', '.join(f'#{i}' for i in batch.unblocks)}")
        lines.append("")
        lines.append("Won't fix:")
        if not self.wont_fix:
            lines.append("  None.")
        for decision in self.wont_fix:
            lines.append(f"  #{decision.finding_id}: {decision.rationale}")
        lines.append("")
        lines.append(f"Verification command: {self.verification_command or '(not set)'}")
        return "\n".join(lines)


class TriagePlanner:
    """
    Builds a draft plan from a report.

    Batch order:
    1. Foundation batches, one finding each, in dependency order
    2. Mechanical batches grouped by theme (min..max findings)
    3. Architectural batches of one finding, or two tightly coupled ones
    """

    def __init__(
        self,
        classifier: Optional[Classifier] = None,
        wont_fix_policy: Optional[WontFixPolicy] = None,
        rules: Optional[BatchingRules] = None,
    ):
        self.classifier = classifier or HeuristicClassifier()
        self.wont_fix_policy = wont_fix_policy or HeuristicWontFixPolicy()
        self.rules = rules or BatchingRules()
        self.dependencies = DependencyAnalyzer(self.rules)
        self.themes = SimilarityHeuristic(threshold=self.rules.theme_threshold)
        self.coupling = SimilarityHeuristic(threshold=self.rules.coupling_threshold)
        self.logger = get_logger()

    def draft(self, report: Report) -> DraftPlan:
        """
        Classify, order and batch every finding of the report.

        Args:
            report: Parsed report.md

        Returns:
            DraftPlan awaiting approval
        """
        findings = report.findings
        classifications = {f.id: self.classifier.classify(f) for f in findings}
        classifications = self.dependencies.classify_dependencies(findings, classifications)

        wont_fix = []
        for finding in findings:
            rationale = self.wont_fix_policy.assess(finding, classifications[finding.id])
            if rationale:
                wont_fix.append(WontFixDecision(finding_id=finding.id, rationale=rationale))
        skipped = {d.finding_id for d in wont_fix}

        remaining = [f for f in findings if f.id not in skipped]
        batches = self.build_batches(remaining, classifications, skipped)

        self.logger.info(
            f"Triage: {len(findings)} findings → {len(batches)} batches, {len(wont_fix)} won't fix"
        )
        return DraftPlan(
            report=report,
            classifications=classifications,
            batches=batches,
            wont_fix=wont_fix,
        )

    def build_batches(
        self,
        findings: List[Finding],
        classifications: Dict[int, Classification],
        skipped=frozenset(),
    ) -> List[Batch]:
        foundations = [f for f in findings if classifications[f.id].is_foundation]
        others = [f for f in findings if not classifications[f.id].is_foundation]
        mechanical = [f for f in others if classifications[f.id].complexity == Complexity.MECHANICAL]
        architectural = [f for f in others if classifications[f.id].complexity == Complexity.ARCHITECTURAL]

        batches = self._foundation_batches(foundations, classifications, skipped)
        batches += self._mechanical_batches(mechanical)
        batches += self._architectural_batches(architectural)
        for number, batch in enumerate(batches, start=1):
            batch.number = number
        return batches

    def _foundation_batches(
        self,
        foundations: List[Finding],
        classifications: Dict[int, Classification],
        skipped,
    ) -> List[Batch]:
        by_id = {f.id: f for f in foundations}
        try:
            order = self.dependencies.topological_sort(list(by_id))
        except ValueError as e:
            self.logger.error(f"{e}; falling back to report order")
            order = sorted(by_id)

        batches = []
        for fid in order:
            finding = by_id[fid]
            unblocks = sorted(i for i in self.dependencies.get_unblocks(fid) if i not in skipped)
            batches.append(Batch(
                number=0,
                name=f"Foundation: {_short(finding.description)}",
                kind=classifications[fid].complexity,
                finding_ids=[fid],
                unblocks=unblocks,
            ))
        return batches

    def _themes(self, findings: List[Finding]) -> List[List[Finding]]:
        """Group by shared primary category, or by root cause across categories."""
        return self.themes.cluster(
            findings,
            related=lambda a, b: a.category == b.category or self.themes.same_root_cause(a, b),
        )

    def _mechanical_batches(self, findings: List[Finding]) -> List[Batch]:
        rules = self.rules
        packed: List[Tuple[str, List[int]]] = []
        pool: List[Finding] = []

        for theme in self._themes(findings):
            if len(theme) < rules.min_batch_size:
                pool.extend(theme)
                continue
            name = _theme_name(sorted({f.category for f in theme}, key=lambda c: c.rank))
            chunks = _split([f.id for f in theme], rules.max_batch_size)
            for index, chunk in enumerate(chunks, start=1):
                packed.append((name if len(chunks) == 1 else f"{name} (part {index})", chunk))

        if pool:
            pool_ids = [f.id for f in pool]
            pool_name = _theme_name(sorted({f.category for f in pool}, key=lambda c: c.rank))
            if len(pool_ids) >= rules.min_batch_size or not packed:
                chunks = _split(pool_ids, rules.max_batch_size)
                for index, chunk in enumerate(chunks, start=1):
                    packed.append((pool_name if len(chunks) == 1 else f"{pool_name} (part {index})", chunk))
            else:
                # Too few to stand alone: top up a batch that has room
                by_id = {f.id: f for f in findings}
                for index in reversed(range(len(packed))):
                    ids = packed[index][1]
                    if len(ids) + len(pool_ids) <= rules.max_batch_size:
                        ids.extend(pool_ids)
                        merged = sorted({by_id[i].category for i in ids}, key=lambda c: c.rank)
                        packed[index] = (_theme_name(merged), ids)
                        break
                else:
                    packed.append((pool_name, pool_ids))

        return [
            Batch(number=0, name=name, kind=Complexity.MECHANICAL, finding_ids=ids)
            for name, ids in packed
        ]

    def _architectural_batches(self, findings: List[Finding]) -> List[Batch]:
        batches = []
        used = set()
        for i, finding in enumerate(findings):
            if finding.id in used:
                continue
            group = [finding]
            used.add(finding.id)
            for other in findings[i + 1:]:
                if len(group) >= self.rules.max_architectural_batch:
                    break
                if other.id in used:
                    continue
                if (other.location.path == finding.location.path
                        and self.coupling.same_root_cause(finding, other)):
                    group.append(other)
                    used.add(other.id)
            batches.append(Batch(
                number=0,
                name=f"Refactor: {_short(finding.description)}",
                kind=Complexity.ARCHITECTURAL,
                finding_ids=[f.id for f in group],
            ))
        return batches


HELP = """Commands:
  move <finding> <batch>        move a finding into another batch
  wontfix <finding> <rationale> mark a finding won't-fix
  fix <finding> [batch]         restore a won't-fix finding (new batch if none given)
  reorder <batch> <position>    move a batch to a new position
  verify <command>              set the verification command
  show                          show the plan again
  approve                       approve and write the plan
  abort                         exit without writing anything"""


class ApprovalSession:
    """
    Interactive review of a DraftPlan.

    Only `approve` returns a plan; `abort` returns None. Anything that is not
    a recognized command is rejected and the user is asked again.
    """

    def __init__(
        self,
        draft: DraftPlan,
        input_fn: Callable[[str], str] = input,
        output_fn: Callable[[str], None] = print,
    ):
        self.draft = draft
        self.input_fn = input_fn
        self.output_fn = output_fn

    def _ids(self, *parts: str) -> List[int]:
        try:
            return [int(p.lstrip("#")) for p in parts]
        except ValueError:
            raise ValueError(f"Expected numbers, got: {' '.join(parts)}")

    def handle(self, line: str) -> Optional[str]:
        """
        Apply one command to the draft.

        Returns:
            "approve" or "abort" when the session should end, else None
        """
        parts = line.strip().split()
        if not parts:
            self.output_fn("Type `approve` to accept the plan, `abort` to exit, or `help`.")
            return None
        command, args = parts[0].lower(), parts[1:]

        if command == "approve" and not args:
            return "approve"
        if command == "abort" and not args:
            return "abort"
        if command == "help":
            self.output_fn(HELP)
        elif command == "show":
            self.output_fn(self.draft.describe())
        elif command == "move" and len(args) == 2:
            finding_id, batch_number = self._ids(*args)
            self.draft.move_finding(finding_id, batch_number)
            self.output_fn(f"Moved #{finding_id} to batch {batch_number}.")
        elif command == "wontfix" and len(args) >= 2:
            (finding_id,) = self._ids(args[0])
            self.draft.mark_wont_fix(finding_id, " ".join(args[1:]))
            self.output_fn(f"#{finding_id} marked won't fix.")
        elif command == "fix" and len(args) in (1, 2):
            ids = self._ids(*args)
            self.draft.restore(ids[0], ids[1] if len(ids) == 2 else None)
            self.output_fn(f"#{ids[0]} restored.")
        elif command == "reorder" and len(args) == 2:
            batch_number, position = self._ids(*args)
            self.draft.reorder(batch_number, position)
            self.output_fn(f"Batch moved to position {position}.")
        elif command == "verify" and args:
            self.draft.set_verification_command(line.strip()[len(parts[0]):])
            self.output_fn(f"Verification command: {self.draft.verification_command}")
        else:
            self.output_fn(f"Unrecognized response: {line.strip()!r}. Type `help` for commands.")
        return None

    def run(self) -> Optional[Plan]:
        """
        Present the draft and loop until approve or abort.

        Returns:
            The approved Plan, or None if aborted
        """
        self.output_fn(self.draft.describe())
        self.output_fn("")
        while not self.draft.verification_command:
            command = self.input_fn("Verification command (e.g. the test suite): ").strip()
            if command:
                self.draft.set_verification_command(command)
            else:
                self.output_fn("A verification command is required.")
        self.output_fn(HELP)

        while True:
            line = self.input_fn("> ")
            try:
                action = self.handle(line)
            except ValueError as e:
                self.output_fn(str(e))
                continue
            if action == "abort":
                return None
            if action == "approve":
                try:
                    return self.draft.approve()
                except ApprovalRequired as e:
                    self.output_fn(str(e))


def run_triage(
    run: RunDirectory,
    planner: TriagePlanner,
    approve: Callable[[DraftPlan], Optional[Plan]],
    force: bool = False,
    day: Optional[Date] = None,
) -> StepOutcome:
    """
    Triage a run: draft, get approval, persist plan.md and progress.md.

    Args:
        run: Run directory holding report.md
        planner: Planner producing the draft
        approve: Approval gate; returns the approved Plan or None
        force: Deliberate re-triage over an existing plan
        day: Date for the plan and progress (default: today)

    Returns:
        StepOutcome handing off to resolve, or back to triage if not approved
    """
    logger = get_logger()
    report = run.read_report()
    if run.has_plan() and not force:
        raise WriteOnceViolation(
            f"{run.plan_path} already exists. Use `triage --force` to re-triage deliberately."
        )

    draft = planner.draft(report)
    plan = approve(draft)
    if plan is None:
        logger.info("Plan not approved; nothing written")
        return StepOutcome(Handoff.TRIAGE, "Plan not approved. Run `review-workflow triage` again when ready.")

    today = (day or Date.today()).isoformat()
    plan.created = today
    validate_plan(report, plan)
    logger.debug(render_plan(plan))

    run.write_plan(plan, overwrite=force)
    run.write_progress(initial_progress(plan, today))

    if not plan.batches:
        return StepOutcome(Handoff.FINALIZE, "Plan approved with nothing to fix. Run `review-workflow resolve` to finish.")
    return StepOutcome(
        Handoff.RESOLVE,
        f"Plan approved: {len(plan.batches)} batches. Run `review-workflow resolve` for batch 1.",
        batch_number=1,
    )
