"""Pipeline stages: scope → analyze → aggregate → triage, plus units of work."""

from .scope import Scope, ScopeResolver
from .analyze import AgentAnalyzer, run_analyzers, parse_raw_finding
from .aggregate import FindingAggregator
from .classify import (
    HeuristicClassifier,
    HeuristicWontFixPolicy,
    AgentClassifier,
    build_classifier,
)
from .triage import TriagePlanner, DraftPlan, ApprovalSession, run_triage
from .units import (
    UnitOfWork,
    UnitResult,
    DesignOption,
    ImplementationStep,
    AgentImplementer,
    build_units,
)
from .approval import ConsoleApprover, ask

__all__ = [
    "Scope",
    "ScopeResolver",
    "AgentAnalyzer",
    "run_analyzers",
    "parse_raw_finding",
    "FindingAggregator",
    "HeuristicClassifier",
    "HeuristicWontFixPolicy",
    "AgentClassifier",
    "build_classifier",
    "TriagePlanner",
    "DraftPlan",
    "ApprovalSession",
    "run_triage",
    "UnitOfWork",
    "UnitResult",
    "DesignOption",
    "ImplementationStep",
    "AgentImplementer",
    "build_units",
    "ConsoleApprover",
    "ask",
]
