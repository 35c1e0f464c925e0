"""Test doubles for the parts that talk to agents, git, the shell or a human.

Everything else in the workflow runs for real against a temporary run
directory.
"""

from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from review_workflow.models import (
    Batch,
    Category,
    Classification,
    Complexity,
    Finding,
    Location,
    Plan,
    Report,
    ScanContext,
    Severity,
    WontFixDecision,
    initial_progress,
)
from review_workflow.pipeline.units import DesignOption, ImplementationStep, UnitResult
from review_workflow.tools import RunDirectory, VerificationResult

DAY = "2026-10-18"


def make_finding(
    finding_id: int,
    description: str = "",
    severity: Severity = Severity.IMPORTANT,
    category: Category = Category.STRUCTURE,
    path: Optional[str] = None,
    line: Optional[int] = None,
    details: str = "",
    suggestion: str = "",
) -> Finding:
    return Finding(
        id=finding_id,
        description=description or f"Finding number {finding_id}",
        severity=severity,
        category=category,
        location=Location(path=path or f"src/module_{finding_id}.py", line=line),
        details=details,
        suggestion=suggestion,
    )


def make_report(findings: List[Finding]) -> Report:
    return Report(
        date=DAY,
        scope="src",
        context=ScanContext(purpose="Billing service", active_areas="", pain_points=""),
        findings=findings,
    )


def scenario_documents() -> Tuple[Report, Plan]:
    """10 findings, 2 won't-fix, three batches of 4, 3 and 1 findings."""
    report = make_report([make_finding(i) for i in range(1, 11)])
    batches = [
        Batch(number=1, name="Naming cleanup", kind=Complexity.MECHANICAL, finding_ids=[1, 2, 3, 4]),
        Batch(number=2, name="Dead code cleanup", kind=Complexity.MECHANICAL, finding_ids=[5, 6, 7]),
        Batch(number=3, name="Refactor: split billing module", kind=Complexity.ARCHITECTURAL, finding_ids=[8]),
    ]
    classifications = {
        i: Classification(
            finding_id=i,
            complexity=Complexity.ARCHITECTURAL if i in (8, 9, 10) else Complexity.MECHANICAL,
            reason="test",
        )
        for i in range(1, 11)
    }
    plan = Plan(
        verification_command="make test",
        created=DAY,
        batches=batches,
        wont_fix=[
            WontFixDecision(finding_id=9, rationale="The retry loop is required by the payment provider."),
            WontFixDecision(finding_id=10, rationale="A minor issue does not justify an architectural change."),
        ],
        classifications=classifications,
    )
    return report, plan


def write_run(path: Path, report: Report, plan: Plan) -> RunDirectory:
    path.mkdir(parents=True, exist_ok=True)
    run = RunDirectory(path)
    run.write_report(report)
    run.write_plan(plan)
    run.write_progress(initial_progress(plan, DAY))
    return run


class FakeVerifier:
    """Returns scripted results in order, then passes forever."""

    def __init__(self, script: Iterable[Tuple[int, str]] = ()):
        self.script = list(script)
        self.commands: List[str] = []

    async def run(self, command: str) -> VerificationResult:
        self.commands.append(command)
        if self.script:
            returncode, output = self.script.pop(0)
        else:
            returncode, output = 0, "42 passed in 0.10s"
        return VerificationResult(command=command, returncode=returncode, output=output)


class FakeGit:
    def __init__(self):
        self.commits: List[Tuple[str, List]] = []

    def _sha(self) -> str:
        return f"c0ffee{len(self.commits)}"

    def commit_all(self, message: str, exclude=()) -> str:
        self.commits.append((message, list(exclude)))
        return self._sha()

    def commit_paths(self, paths, message: str) -> str:
        self.commits.append((message, list(paths)))
        return self._sha()


class FakeImplementer:
    """
    Records calls and reports each unit as having changed its own files.

    `shared_file` is added to every unit's changed files to simulate
    concurrent units editing the same file.
    """

    def __init__(self, shared_file: Optional[str] = None, reconcile_ok: bool = True):
        self.shared_file = shared_file
        self.reconcile_ok = reconcile_ok
        self.applied: List[List[int]] = []
        self.reconciled: List[List[str]] = []
        self.repairs = 0
        self.steps: List[str] = []

    async def apply(self, unit) -> UnitResult:
        self.applied.append(unit.finding_ids)
        files = list(unit.files) + ([self.shared_file] if self.shared_file else [])
        return UnitResult(
            finding_ids=unit.finding_ids,
            changed_files=files,
            changes={fid: f"Fixed #{fid}" for fid in unit.finding_ids},
        )

    async def reconcile(self, units, files) -> bool:
        self.reconciled.append(list(files))
        return self.reconcile_ok

    async def repair(self, findings, verification) -> UnitResult:
        self.repairs += 1
        return UnitResult(finding_ids=[f.id for f in findings], changed_files=["src/fixup.py"])

    async def propose_designs(self, findings) -> List[DesignOption]:
        return [
            DesignOption(name="Extract module", summary="Move billing into its own module.",
                         tradeoffs="More files, clearer ownership.", recommended=True),
            DesignOption(name="Facade", summary="Put a facade in front of billing.",
                         tradeoffs="Less churn, keeps the tangle.", recommended=False),
        ]

    async def plan_steps(self, findings, option) -> List[ImplementationStep]:
        ids = [f.id for f in findings]
        return [
            ImplementationStep(description="Create the new module", finding_ids=[]),
            ImplementationStep(description="Move callers over", finding_ids=ids),
        ]

    async def apply_step(self, step, option) -> UnitResult:
        self.steps.append(step.description)
        return UnitResult(
            finding_ids=step.finding_ids,
            changed_files=["src/billing.py"],
            changes={fid: f"{option.name}: {step.description}" for fid in step.finding_ids},
        )


class FakeApprover:
    def __init__(self, design_choice: int = 0, close: bool = True):
        self.design_choice = design_choice
        self.close = close
        self.design_requests = 0
        self.close_out_requests: List[List[int]] = []

    def choose_design(self, batch, options):
        self.design_requests += 1
        return options[self.design_choice]

    def confirm_close_out(self, outstanding) -> bool:
        self.close_out_requests.append([e.number for e in outstanding])
        return self.close


class ScriptedInput:
    """input() replacement that replays answers and records prompts."""

    def __init__(self, answers: Iterable[str]):
        self.answers = list(answers)
        self.prompts: List[str] = []

    def __call__(self, prompt: str = "") -> str:
        self.prompts.append(prompt)
        if not self.answers:
            raise AssertionError(f"Unexpected prompt: {prompt!r}")
        return self.answers.pop(0)
