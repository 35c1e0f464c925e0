"""Units of work: the agent-side of batch execution.

A mechanical batch fans out into units (one per file) that run concurrently.
An architectural batch goes through a designer first, then is implemented
step by step. Both talk to the working tree through a Claude agent with
edit tools; everything else in the executor is deterministic.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Protocol, Set

from claude_agent_sdk import (
    ClaudeSDKClient,
    ClaudeAgentOptions,
    tool,
    create_sdk_mcp_server,
    AssistantMessage,
    ToolUseBlock,
    ResultMessage,
)

from ..models import Finding
from ..tools import StorageTool, VerificationResult
from ..utils import get_logger


EDIT_TOOLS = ("Edit", "Write", "MultiEdit")


@dataclass
class UnitOfWork:
    """Findings fixed together by one agent. Findings sharing a file share a unit."""
    findings: List[Finding]

    @property
    def finding_ids(self) -> List[int]:
        return [f.id for f in self.findings]

    @property
    def files(self) -> List[str]:
        return sorted({f.location.path for f in self.findings})


@dataclass
class UnitResult:
    """What a unit (or an architectural step) actually changed."""
    finding_ids: List[int]
    changed_files: List[str] = field(default_factory=list)
    changes: Dict[int, str] = field(default_factory=dict)  # finding id -> change made
    summary: str = ""


@dataclass
class DesignOption:
    """One way to resolve an architectural batch."""
    name: str
    summary: str
    tradeoffs: str
    recommended: bool = False


@dataclass
class ImplementationStep:
    """One verifiable step of an architectural change."""
    description: str
    finding_ids: List[int] = field(default_factory=list)


def build_units(findings: List[Finding]) -> List[UnitOfWork]:
    """
    Split a mechanical batch into units, one per file.

    Args:
        findings: Batch findings in plan order

    Returns:
        Units in order of first appearance
    """
    by_file: Dict[str, List[Finding]] = {}
    for finding in findings:
        by_file.setdefault(finding.location.path, []).append(finding)
    return [UnitOfWork(findings=group) for group in by_file.values()]


class Implementer(Protocol):
    """Everything the executor asks of the agent side."""

    async def apply(self, unit: UnitOfWork) -> UnitResult:
        ...

    async def reconcile(self, units: List[UnitOfWork], files: List[str]) -> bool:
        ...

    async def repair(self, findings: List[Finding], verification: VerificationResult) -> UnitResult:
        ...

    async def propose_designs(self, findings: List[Finding]) -> List[DesignOption]:
        ...

    async def plan_steps(self, findings: List[Finding], option: DesignOption) -> List[ImplementationStep]:
        ...

    async def apply_step(self, step: ImplementationStep, option: DesignOption) -> UnitResult:
        ...


def _describe(findings: List[Finding]) -> str:
    lines = []
    for f in findings:
        lines.append(f"### #{f.id} {f.description}")
        lines.append(f"- Severity: {f.severity.value}")
        lines.append(f"- Location: {f.location}")
        if f.details:
            lines.append(f"- Details: {f.details}")
        if f.suggestion:
            lines.append(f"- Suggestion: {f.suggestion}")
        lines.append("")
    return "\n".join(lines)


FIX_PROMPT = """
You are fixing structural issues found during a code review.

## Findings
{findings}

## Instructions
1. Use the Edit tool to fix each finding
2. Keep changes to what the findings ask for; do not refactor beyond them
3. Call `record_change` once per finding with what you changed
4. Do not commit; the workflow commits the batch as a whole
"""

RECONCILE_PROMPT = """
Several independent fixes were applied concurrently and touched the same files:
{files}

The fixes were meant to address:
{findings}

Read each file, make sure every intended change is present exactly once and
that the edits do not contradict each other. Fix any clobbered or duplicated
edits with the Edit tool. Call `record_change` with a one-line summary per
finding once the file is consistent, or do not call it if you cannot
reconcile the edits.
"""

REPAIR_PROMPT = """
The verification command failed after changes for these findings:
{findings}

## Command
{command}

## Output
```
{output}
```

Diagnose the failure from the output, then fix it with the smallest change.
Do not revert the intended fixes. Call `record_change` for any finding whose
change you adjusted.
"""

DESIGN_PROMPT = """
These findings need an architectural change:
{findings}

Propose 2 or 3 distinct designs. For each, call `store_option` with:
- name: short name for the option
- summary: what the change looks like
- tradeoffs: what it costs and what it buys
- recommended: true for exactly one option

Do not edit any files.
"""

STEPS_PROMPT = """
Break this approved design into small steps that each leave the code in a
working, verifiable state.

## Design: {name}
{summary}

## Findings
{findings}

Call `store_step` once per step, in order, with:
- description: what the step changes
- finding_ids: comma-separated ids of findings the step addresses (may be empty)

Do not edit any files.
"""

STEP_PROMPT = """
Implement one step of the approved design "{name}":

{summary}

## This step
{description}

Use the Edit tool. Change only what this step needs. Call `record_change`
for each finding this step addresses ({finding_ids}).
"""


class AgentImplementer:
    """
    Implementer backed by Claude agents working in the repository.

    Changed files are tracked from Edit/Write tool calls; per-finding change
    descriptions come from the `record_change` tool.
    """

    def __init__(self, work_dir: Path, max_turns: int = 30):
        self.work_dir = Path(work_dir)
        self.max_turns = max_turns
        self.logger = get_logger()

    def _relative(self, file_path: str) -> str:
        path = Path(file_path)
        if path.is_absolute():
            try:
                return str(path.relative_to(self.work_dir))
            except ValueError:
                return str(path)
        return str(path)

    async def _edit_session(self, prompt: str, finding_ids: List[int]) -> UnitResult:
        changes: StorageTool[dict] = StorageTool(required=["finding_id", "change"])

        @tool(
            "record_change",
            "Record what was changed for one finding",
            {"finding_id": int, "change": str}
        )
        async def record_change(args: dict[str, Any]) -> dict[str, Any]:
            return changes.store(args)

        server = create_sdk_mcp_server(
            name="units",
            version="1.0.0",
            tools=[record_change]
        )
        options = ClaudeAgentOptions(
            system_prompt="You are a senior developer. Fix code issues with minimal changes.",
            mcp_servers={"units": server},
            allowed_tools=["Read", "Grep", "Glob", "Edit", "Write", "mcp__units__record_change"],
            cwd=str(self.work_dir),
            permission_mode="acceptEdits",
            max_turns=self.max_turns,
        )

        touched: Set[str] = set()
        summary = ""
        async with ClaudeSDKClient(options=options) as client:
            await client.query(prompt)
            async for message in client.receive_response():
                if isinstance(message, AssistantMessage):
                    for block in message.content:
                        if isinstance(block, ToolUseBlock) and block.name in EDIT_TOOLS:
                            file_path = block.input.get("file_path")
                            if file_path:
                                self.logger.debug(f"  Editing {file_path}...")
                                touched.add(self._relative(file_path))
                elif isinstance(message, ResultMessage):
                    summary = message.result or ""
                    if message.is_error:
                        self.logger.warning(f"Agent reported an error: {message.result}")

        recorded = {}
        for entry in changes.values:
            fid = int(entry["finding_id"])
            if fid in finding_ids:
                recorded[fid] = " ".join(str(entry["change"]).split())
        return UnitResult(
            finding_ids=list(finding_ids),
            changed_files=sorted(touched),
            changes=recorded,
            summary=summary,
        )

    async def apply(self, unit: UnitOfWork) -> UnitResult:
        self.logger.info(f"Fixing {', '.join(f'#{i}' for i in unit.finding_ids)} in {', '.join(unit.files)}")
        return await self._edit_session(
            FIX_PROMPT.format(findings=_describe(unit.findings)),
            unit.finding_ids,
        )

    async def reconcile(self, units: List[UnitOfWork], files: List[str]) -> bool:
        findings = [f for unit in units for f in unit.findings]
        result = await self._edit_session(
            RECONCILE_PROMPT.format(files="\n".join(f"- {f}" for f in files), findings=_describe(findings)),
            [f.id for f in findings],
        )
        return bool(result.changes)

    async def repair(self, findings: List[Finding], verification: VerificationResult) -> UnitResult:
        return await self._edit_session(
            REPAIR_PROMPT.format(
                findings=_describe(findings),
                command=verification.command,
                output=verification.output[-8000:],
            ),
            [f.id for f in findings],
        )

    async def _collect(self, prompt: str, name: str, schema: Dict[str, type], required: List[str]) -> List[dict]:
        storage: StorageTool[dict] = StorageTool(required=required)

        @tool(name, f"Store one {name.split('_', 1)[1]}", schema)
        async def store(args: dict[str, Any]) -> dict[str, Any]:
            return storage.store(args)

        server = create_sdk_mcp_server(name="design", version="1.0.0", tools=[store])
        options = ClaudeAgentOptions(
            system_prompt="You are a staff engineer designing refactorings. Never edit files.",
            mcp_servers={"design": server},
            allowed_tools=["Read", "Grep", "Glob", f"mcp__design__{name}"],
            cwd=str(self.work_dir),
            max_turns=self.max_turns,
        )
        async with ClaudeSDKClient(options=options) as client:
            await client.query(prompt)
            async for message in client.receive_response():
                if isinstance(message, ResultMessage) and message.is_error:
                    self.logger.warning(f"Design agent error: {message.result}")
        return storage.values

    async def propose_designs(self, findings: List[Finding]) -> List[DesignOption]:
        stored = await self._collect(
            DESIGN_PROMPT.format(findings=_describe(findings)),
            "store_option",
            {"name": str, "summary": str, "tradeoffs": str, "recommended": bool},
            ["name", "summary", "tradeoffs"],
        )
        options = [
            DesignOption(
                name=str(s["name"]).strip(),
                summary=str(s["summary"]).strip(),
                tradeoffs=str(s["tradeoffs"]).strip(),
                recommended=bool(s.get("recommended", False)),
            )
            for s in stored
        ]
        return options[:3]

    async def plan_steps(self, findings: List[Finding], option: DesignOption) -> List[ImplementationStep]:
        stored = await self._collect(
            STEPS_PROMPT.format(name=option.name, summary=option.summary, findings=_describe(findings)),
            "store_step",
            {"description": str, "finding_ids": str},
            ["description"],
        )
        known = {f.id for f in findings}
        steps = []
        for s in stored:
            ids = []
            for part in str(s.get("finding_ids", "")).replace("#", "").split(","):
                part = part.strip()
                if part.isdigit() and int(part) in known:
                    ids.append(int(part))
            steps.append(ImplementationStep(description=str(s["description"]).strip(), finding_ids=ids))
        return steps

    async def apply_step(self, step: ImplementationStep, option: DesignOption) -> UnitResult:
        return await self._edit_session(
            STEP_PROMPT.format(
                name=option.name,
                summary=option.summary,
                description=step.description,
                finding_ids=", ".join(f"#{i}" for i in step.finding_ids) or "none",
            ),
            step.finding_ids,
        )
