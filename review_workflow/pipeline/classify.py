"""Finding classifiers for triage.

Mechanical vs. architectural is a judgment call, not a function of the
finding, so the classifier is pluggable. Every classification carries a
one-line reason so the plan can show why a finding landed where it did.
"""

import asyncio
import re
from typing import Any, Optional, Protocol

from claude_agent_sdk import (
    ClaudeSDKClient,
    ClaudeAgentOptions,
    tool,
    create_sdk_mcp_server,
    ResultMessage,
)

from ..models import Classification, Complexity, Finding, Severity
from ..tools import StorageTool
from ..utils import get_logger


MECHANICAL_PATTERNS = [
    r"\brenam\w*", r"\bremov\w*", r"\bdelet\w*", r"\bunused\b", r"\bdead\b",
    r"\bimports?\b", r"\bconstants?\b", r"\btypos?\b", r"\binline\b",
    r"\bmagic (number|string)s?\b", r"\bliterals?\b", r"\bcommented[- ]out\b",
    r"\bmove\b",
]

ARCHITECTURAL_PATTERNS = [
    r"\bintroduc\w*", r"\bextract\w*", r"\bsplit\w*", r"\bdecompos\w*",
    r"\babstraction\w*", r"\binterfaces?\b", r"\bdata model\b", r"\bschema\b",
    r"\bregistry\b", r"\blayer\w*", r"\bredesign\w*", r"\brestructur\w*",
    r"\bdependency injection\b", r"\bseparat\w*",
]

INHERENT_PATTERNS = [
    r"\binherent\b", r"\bby design\b", r"\brequired by\b", r"\bunavoidable\b",
    r"\bimposed by\b",
]


def _hits(patterns, text: str) -> list:
    found = []
    for pattern in patterns:
        match = re.search(pattern, text)
        if match:
            found.append(match.group(0))
    return found


class Classifier(Protocol):
    """classify(Finding) -> Classification"""

    def classify(self, finding: Finding) -> Classification:
        ...


class HeuristicClassifier:
    """
    Keyword-based complexity classifier.

    - Renames, deletions, import or constant changes → mechanical
    - New abstractions, decomposition, data-model change → architectural
    - No signal either way: minor findings are mechanical, others architectural
    """

    def classify(self, finding: Finding) -> Classification:
        text = f"{finding.description} {finding.suggestion}".lower()
        mechanical = _hits(MECHANICAL_PATTERNS, text)
        architectural = _hits(ARCHITECTURAL_PATTERNS, text)

        if len(architectural) > len(mechanical):
            complexity = Complexity.ARCHITECTURAL
            reason = f"structural change ({', '.join(architectural)})"
        elif mechanical:
            complexity = Complexity.MECHANICAL
            reason = f"no structural decision ({', '.join(mechanical)})"
        elif finding.severity == Severity.MINOR:
            complexity = Complexity.MECHANICAL
            reason = "minor finding with no structural signal"
        else:
            complexity = Complexity.ARCHITECTURAL
            reason = f"{finding.severity.value.lower()} finding with no mechanical signal"

        return Classification(finding_id=finding.id, complexity=complexity, reason=reason)


class WontFixPolicy(Protocol):
    """Returns a one-sentence rationale if the finding should not be fixed."""

    def assess(self, finding: Finding, classification: Classification) -> Optional[str]:
        ...


class HeuristicWontFixPolicy:
    """
    Flags won't-fix candidates:
    - the issue is described as inherent to the domain
    - a minor issue that would need an architectural change (cost > benefit)
    """

    def assess(self, finding: Finding, classification: Classification) -> Optional[str]:
        text = f"{finding.description} {finding.details}".lower()
        if _hits(INHERENT_PATTERNS, text):
            return "The issue is inherent to the problem domain, so restructuring would not remove it."
        if (finding.severity == Severity.MINOR
                and classification.complexity == Complexity.ARCHITECTURAL):
            return "A minor issue does not justify an architectural change; the cost exceeds the benefit."
        return None


CLASSIFY_PROMPT = """
Classify the remediation effort for this code review finding.

## Finding #{id}
- Severity: {severity}
- Category: {category}
- Location: {location}
- Description: {description}
- Details: {details}
- Suggestion: {suggestion}

## Rules
- **mechanical**: renames, deletions, import or constant changes; no structural decision
- **architectural**: needs a new abstraction, decomposition, or data-model change

Call `store_classification` exactly once with:
- complexity: mechanical or architectural
- reason: one sentence explaining the choice
"""


class AgentClassifier:
    """Classifier backed by a Claude agent; falls back to heuristics on no answer."""

    def __init__(self, fallback: Optional[Classifier] = None, max_turns: int = 3):
        self.fallback = fallback or HeuristicClassifier()
        self.max_turns = max_turns
        self.logger = get_logger()

    async def classify_async(self, finding: Finding) -> Classification:
        storage: StorageTool[dict] = StorageTool(required=["complexity"])

        @tool(
            "store_classification",
            "Store the complexity classification of a finding",
            {"complexity": str, "reason": str}
        )
        async def store_classification(args: dict[str, Any]) -> dict[str, Any]:
            return storage.store(args)

        server = create_sdk_mcp_server(
            name="triage",
            version="1.0.0",
            tools=[store_classification]
        )
        options = ClaudeAgentOptions(
            system_prompt="You are a staff engineer triaging code review findings.",
            mcp_servers={"triage": server},
            allowed_tools=["mcp__triage__store_classification"],
            max_turns=self.max_turns,
        )
        prompt = CLASSIFY_PROMPT.format(
            id=finding.id,
            severity=finding.severity.value,
            category=finding.category.value,
            location=finding.location,
            description=finding.description,
            details=finding.details or "-",
            suggestion=finding.suggestion or "-",
        )

        async with ClaudeSDKClient(options=options) as client:
            await client.query(prompt)
            async for message in client.receive_response():
                if isinstance(message, ResultMessage) and message.is_error:
                    self.logger.warning(f"Classifier agent error for #{finding.id}: {message.result}")

        answer = storage.first
        try:
            complexity = Complexity(str(answer.get("complexity", "")).strip().lower()) if answer else None
        except ValueError:
            complexity = None

        if complexity is None:
            self.logger.warning(f"No usable classification for #{finding.id}; using heuristic")
            return self.fallback.classify(finding)

        return Classification(
            finding_id=finding.id,
            complexity=complexity,
            reason=" ".join(str(answer.get("reason", "")).split()) or "agent judgment",
        )

    def classify(self, finding: Finding) -> Classification:
        """Synchronous entry point matching the Classifier protocol."""
        return asyncio.run(self.classify_async(finding))


def build_classifier(name: str) -> Classifier:
    """Classifier by config name: heuristic or agent."""
    if name == "heuristic":
        return HeuristicClassifier()
    if name == "agent":
        return AgentClassifier()
    raise ValueError(f"Unknown classifier: {name}")
