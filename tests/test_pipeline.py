"""Tests for scope resolution, classification, dependencies, units and approval gates."""

import pytest

from review_workflow.models import Batch, BatchProgress, Complexity, Dependency, Severity
from review_workflow.orchestrator import ConflictDetector, DependencyAnalyzer
from review_workflow.pipeline import (
    ConsoleApprover,
    HeuristicClassifier,
    HeuristicWontFixPolicy,
    ScopeResolver,
    UnitResult,
    ask,
    build_classifier,
    build_units,
)
from review_workflow.pipeline.units import DesignOption

from fakes import ScriptedInput, make_finding


class TestScopeResolver:
    def test_prompts_until_path_exists(self, tmp_path):
        # Given
        (tmp_path / "src").mkdir()
        answers = ScriptedInput(["", "missing", "src"])
        output = []
        resolver = ScopeResolver(answers, output.append, base_dir=tmp_path)

        # When
        scope = resolver.resolve()

        # Then
        assert scope.path == (tmp_path / "src").resolve()
        assert scope.display == "src"
        assert output == ["A path is required.", "Path does not exist: missing"]

    def test_argument_skips_prompt(self, tmp_path):
        target = tmp_path / "app.py"
        target.write_text("print('hi')\n")
        answers = ScriptedInput([])
        scope = ScopeResolver(answers, lambda _: None, base_dir=tmp_path).resolve("app.py")
        assert scope.is_file
        assert answers.prompts == []

    def test_context_answers(self):
        answers = ScriptedInput(["Billing service", "", "Slow tests"])
        context = ScopeResolver(answers, lambda _: None).collect_context()
        assert context.purpose == "Billing service"
        assert context.active_areas == ""
        assert context.pain_points == "Slow tests"


class TestHeuristicClassifier:
    def test_rename_is_mechanical(self):
        result = HeuristicClassifier().classify(make_finding(1, "Rename variable tmp in parser"))
        assert result.complexity == Complexity.MECHANICAL
        assert "renam" in result.reason

    def test_extract_is_architectural(self):
        finding = make_finding(1, "OrderService does too much", suggestion="Extract a pricing interface")
        result = HeuristicClassifier().classify(finding)
        assert result.complexity == Complexity.ARCHITECTURAL
        assert "structural change" in result.reason

    def test_no_signal_falls_back_on_severity(self):
        classifier = HeuristicClassifier()
        minor = classifier.classify(make_finding(1, "Odd formatting", severity=Severity.MINOR))
        important = classifier.classify(make_finding(2, "Odd formatting"))
        assert minor.complexity == Complexity.MECHANICAL
        assert important.complexity == Complexity.ARCHITECTURAL

    def test_build_classifier_by_name(self):
        assert isinstance(build_classifier("heuristic"), HeuristicClassifier)
        with pytest.raises(ValueError, match="Unknown classifier"):
            build_classifier("oracle")


class TestWontFixPolicy:
    def test_inherent_issue(self):
        finding = make_finding(1, "Retry loop duplicated", details="This is imposed by the vendor SDK.")
        classification = HeuristicClassifier().classify(finding)
        assert "inherent" in HeuristicWontFixPolicy().assess(finding, classification)

    def test_minor_architectural(self):
        finding = make_finding(1, "Split the config layer", severity=Severity.MINOR)
        classification = HeuristicClassifier().classify(finding)
        assert "cost exceeds the benefit" in HeuristicWontFixPolicy().assess(finding, classification)

    def test_ordinary_finding_is_fixed(self):
        finding = make_finding(1, "Remove unused import", severity=Severity.MINOR)
        classification = HeuristicClassifier().classify(finding)
        assert HeuristicWontFixPolicy().assess(finding, classification) is None


class TestDependencyAnalyzer:
    def findings(self):
        return [
            make_finding(1, "Introduce shared money type", details="Totals in src/invoice.py use floats",
                         path="src/money.py"),
            make_finding(2, "Invoice totals use floats", path="src/invoice.py"),
            make_finding(3, "Centralize currency formatting", details="Formatting lives in src/money.py",
                         path="src/format.py"),
        ]

    def test_foundation_marked_with_unblocks(self):
        # Given
        findings = self.findings()
        classifier = HeuristicClassifier()
        classifications = {f.id: classifier.classify(f) for f in findings}

        # When
        result = DependencyAnalyzer().classify_dependencies(findings, classifications)

        # Then
        assert result[1].dependency == Dependency.FOUNDATION
        assert result[1].reason.endswith("unblocks #2")
        assert result[2].dependency == Dependency.INDEPENDENT
        assert result[3].is_foundation

    def test_blockers_sort_first(self):
        # Given
        analyzer = DependencyAnalyzer()
        analyzer.build_dependency_graph(self.findings())

        # When
        order = analyzer.topological_sort([1, 2, 3])

        # Then
        assert order == [3, 1, 2]
        assert analyzer.get_unblocks(1) == {2}

    def test_cycle_detected(self):
        # Given - two foundations naming each other's files
        analyzer = DependencyAnalyzer()
        analyzer.build_dependency_graph([
            make_finding(1, "Introduce a plugin registry", details="Used by src/b.py", path="src/a.py"),
            make_finding(2, "Centralize hook wiring", details="Hooks defined in src/a.py", path="src/b.py"),
        ])

        # When/Then
        with pytest.raises(ValueError, match="Circular dependency"):
            analyzer.topological_sort([1, 2])


class TestUnitsAndConflicts:
    def test_findings_sharing_a_file_share_a_unit(self):
        findings = [
            make_finding(1, path="src/a.py"),
            make_finding(2, path="src/b.py"),
            make_finding(3, path="src/a.py"),
        ]
        units = build_units(findings)
        assert [u.finding_ids for u in units] == [[1, 3], [2]]
        assert units[0].files == ["src/a.py"]

    def test_conflict_groups_are_transitive(self):
        # Given
        results = [
            UnitResult(finding_ids=[1], changed_files=["a.py", "b.py"]),
            UnitResult(finding_ids=[2], changed_files=["b.py"]),
            UnitResult(finding_ids=[3], changed_files=["c.py"]),
            UnitResult(finding_ids=[4], changed_files=["c.py", "d.py"]),
            UnitResult(finding_ids=[5], changed_files=["e.py"]),
        ]
        detector = ConflictDetector()

        # When
        groups = detector.find_conflict_groups(results)

        # Then
        assert groups == [([0, 1], ["b.py"]), ([2, 3], ["c.py"])]

    def test_no_overlap_no_conflict(self):
        results = [
            UnitResult(finding_ids=[1], changed_files=["a.py"]),
            UnitResult(finding_ids=[2], changed_files=["b.py"]),
        ]
        assert ConflictDetector().find_conflict_groups(results) == []


class TestApprovalGates:
    def test_ask_repeats_until_exact_answer(self):
        answers = ScriptedInput(["yes", "maybe", " CLOSE "])
        output = []
        assert ask("? ", {"continue": False, "close": True}, answers, output.append) is True
        assert len(output) == 2
        assert "`continue`, `close`" in output[0]

    def test_design_chosen_by_name_or_number(self):
        # Given
        batch = Batch(number=3, name="Refactor: billing", kind=Complexity.ARCHITECTURAL, finding_ids=[8])
        options = [
            DesignOption("Extract module", "Own module.", "More files.", recommended=True),
            DesignOption("Facade", "Wrap it.", "Keeps the tangle."),
        ]
        output = []

        # When
        by_number = ConsoleApprover(ScriptedInput(["2"]), output.append).choose_design(batch, options)
        by_name = ConsoleApprover(ScriptedInput(["extract module"]), output.append).choose_design(batch, options)

        # Then
        assert by_number.name == "Facade"
        assert by_name.name == "Extract module"
        assert "1. Extract module (recommended)" in output

    def test_close_out_answer(self):
        outstanding = [BatchProgress(number=2, name="Dead code cleanup", finding_ids=[5, 6])]
        approver = ConsoleApprover(ScriptedInput(["continue"]), lambda _: None)
        assert approver.confirm_close_out(outstanding) is False
