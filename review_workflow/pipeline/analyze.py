"""Category analyzers - find structural issues, one agent per category."""

import asyncio
from typing import Any, Dict, List, Optional, Protocol

from claude_agent_sdk import (
    ClaudeSDKClient,
    ClaudeAgentOptions,
    tool,
    create_sdk_mcp_server,
    AssistantMessage,
    ToolUseBlock,
    ResultMessage,
)

from ..models import (
    AnalyzerResult,
    Category,
    Location,
    RawFinding,
    ScanContext,
    Severity,
)
from ..tools import StorageTool
from ..utils import get_logger
from .scope import Scope


CATEGORY_GUIDANCE = {
    Category.STRUCTURE: "module layout, misplaced responsibilities, god modules, layering violations",
    Category.COUPLING: "hidden dependencies, circular imports, global state, modules reaching into each other's internals",
    Category.DUPLICATION: "copy-pasted logic, parallel hierarchies, repeated constants and literals",
    Category.COMPLEXITY: "long functions, deep nesting, tangled control flow, flag arguments",
    Category.NAMING: "misleading or inconsistent names, abbreviations, names that no longer match behavior",
    Category.DEAD_CODE: "unused functions, unreachable branches, stale feature flags, commented-out code",
    Category.TESTABILITY: "code that cannot be tested without heavy mocking, side effects at import time, missing seams",
}

ANALYZER_PROMPT = """
You are reviewing a codebase for structural issues in ONE category: **{category}**.

## What to look for
{guidance}

## Scope
{scope}

## Context from the team
- Purpose: {purpose}
- Active areas: {active_areas}
- Pain points: {pain_points}

## For Each Finding
Call the `store_finding` tool with:
- description: one-line summary of the issue
- severity: one of [critical, important, minor]
- file_path: path to the file, relative to the scope
- line: line number (0 if the issue spans the file)
- details: what is wrong and why it matters
- suggestion: the concrete change that would fix it

## Severity Guidelines
- **critical**: structure that causes bugs or blocks change outright
- **important**: structure that makes change slow or risky
- **minor**: polish and small cleanups

Only report issues in the {category} category. Do not modify any files.
"""

FINDING_FIELDS = ["description", "severity", "file_path"]


class Analyzer(Protocol):
    """Anything that can analyze one category."""

    async def analyze(self, category: Category, scope: Scope, context: ScanContext) -> AnalyzerResult:
        ...


def parse_raw_finding(category: Category, data: Dict[str, Any]) -> RawFinding:
    """
    Convert a stored tool payload into a RawFinding.

    Raises:
        ValueError: If severity is unknown or required fields are empty
    """
    description = " ".join(str(data.get("description", "")).split())
    path = str(data.get("file_path", "")).strip()
    if not description or not path:
        raise ValueError("description and file_path are required")

    line = int(data.get("line") or 0)
    return RawFinding(
        description=description,
        severity=Severity.parse(str(data.get("severity", ""))),
        category=category,
        location=Location(path=path, line=line if line > 0 else None),
        details=str(data.get("details", "")).strip(),
        suggestion=str(data.get("suggestion", "")).strip(),
    )


class AgentAnalyzer:
    """
    Analyzer backed by a Claude agent with read-only tools.

    Findings are collected through a `store_finding` tool call per issue,
    so every result has a fixed schema.
    """

    def __init__(self, max_turns: int = 40):
        self.max_turns = max_turns
        self.logger = get_logger()

    async def analyze(self, category: Category, scope: Scope, context: ScanContext) -> AnalyzerResult:
        storage: StorageTool[dict] = StorageTool(required=FINDING_FIELDS)

        @tool(
            "store_finding",
            "Store a structural issue found during review",
            {
                "description": str,
                "severity": str,
                "file_path": str,
                "line": int,
                "details": str,
                "suggestion": str,
            }
        )
        async def store_finding(args: dict[str, Any]) -> dict[str, Any]:
            return storage.store(args)

        server = create_sdk_mcp_server(
            name=f"analysis-{category.value}",
            version="1.0.0",
            tools=[store_finding]
        )

        work_dir = scope.path if not scope.is_file else scope.path.parent
        options = ClaudeAgentOptions(
            system_prompt="""You are a senior engineer reviewing code structure.
Report real, actionable issues with precise locations. Never edit files.""",
            mcp_servers={"analysis": server},
            allowed_tools=[
                "Read",
                "Grep",
                "Glob",
                "mcp__analysis__store_finding",
            ],
            cwd=str(work_dir),
            permission_mode="acceptEdits",
            max_turns=self.max_turns,
        )

        prompt = ANALYZER_PROMPT.format(
            category=category.value,
            guidance=CATEGORY_GUIDANCE[category],
            scope=scope.display,
            purpose=context.purpose or "Not provided",
            active_areas=context.active_areas or "Not provided",
            pain_points=context.pain_points or "Not provided",
        )

        async with ClaudeSDKClient(options=options) as client:
            await client.query(prompt)

            async for message in client.receive_response():
                if isinstance(message, AssistantMessage):
                    for block in message.content:
                        if isinstance(block, ToolUseBlock):
                            self.logger.debug(f"[{category.value}] tool: {block.name}")
                elif isinstance(message, ResultMessage):
                    self.logger.info(
                        f"[{category.value}] analyzer finished in {message.duration_ms}ms "
                        f"with {len(storage)} findings"
                    )
                    if message.is_error:
                        return AnalyzerResult(
                            category=category,
                            status="failed",
                            error=f"Agent reported an error: {message.result}",
                        )

        findings = []
        for data in storage.values:
            try:
                findings.append(parse_raw_finding(category, data))
            except (ValueError, TypeError) as e:
                self.logger.warning(f"[{category.value}] dropped unparseable finding: {e}")

        return AnalyzerResult(category=category, findings=findings)


async def run_analyzers(
    analyzer: Analyzer,
    scope: Scope,
    context: ScanContext,
    categories: Optional[List[Category]] = None,
    max_parallel: int = 7,
) -> List[AnalyzerResult]:
    """
    Run one analyzer per category concurrently.

    A category whose analyzer raises is reported as failed; the others are
    unaffected.

    Args:
        analyzer: Analyzer implementation
        scope: Resolved scope
        context: Team context
        categories: Categories to analyze (default: all seven)
        max_parallel: Concurrency limit

    Returns:
        One AnalyzerResult per category, in category order
    """
    logger = get_logger()
    categories = categories or list(Category)
    semaphore = asyncio.Semaphore(max_parallel)

    async def limited(category: Category) -> AnalyzerResult:
        async with semaphore:
            return await analyzer.analyze(category, scope, context)

    results = await asyncio.gather(*(limited(c) for c in categories), return_exceptions=True)

    collected = []
    for category, result in zip(categories, results):
        if isinstance(result, Exception):
            logger.error(f"[{category.value}] analyzer failed: {result}")
            collected.append(AnalyzerResult(category=category, status="failed", error=str(result)))
        else:
            collected.append(result)
    return collected
