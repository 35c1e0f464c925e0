"""Tests for the Finding Aggregator and the similarity heuristic."""

from datetime import date

from review_workflow.models import AnalyzerResult, Category, Location, RawFinding, ScanContext, Severity
from review_workflow.pipeline import FindingAggregator
from review_workflow.utils import SimilarityHeuristic
from review_workflow.utils.similarity import overlap, tokens

from fakes import make_finding


def raw(description, category=Category.STRUCTURE, severity=Severity.IMPORTANT,
        path="src/a.py", line=None, details="", suggestion=""):
    return RawFinding(
        description=description,
        severity=severity,
        category=category,
        location=Location(path, line),
        details=details,
        suggestion=suggestion,
    )


def aggregate(results):
    return FindingAggregator().aggregate(results, "src", ScanContext(), day=date(2026, 10, 18))


class TestSimilarity:
    def test_tokens_drop_stopwords_and_short_words(self):
        assert tokens("Use the Parser for all of it") == frozenset({"parser"})

    def test_overlap(self):
        assert overlap("parse config file", "parse config file") == 1.0
        assert overlap("", "anything") == 0.0
        assert overlap("parse config", "render template") == 0.0

    def test_same_root_cause_needs_relation(self):
        # Given - identical descriptions, different files and categories
        heuristic = SimilarityHeuristic()
        a = make_finding(1, "Duplicated retry loop", category=Category.DUPLICATION, path="src/a.py")
        b = make_finding(2, "Duplicated retry loop", category=Category.COUPLING, path="src/b.py")

        # Then
        assert not heuristic.same_root_cause(a, b)
        assert heuristic.same_root_cause(a, make_finding(3, "Duplicated retry loop", path="src/a.py"))

    def test_threshold_is_configurable(self):
        a = make_finding(1, "Duplicated retry loop in client")
        b = make_finding(2, "Duplicated retry loop in server")
        assert SimilarityHeuristic(threshold=0.5).same_root_cause(a, b)
        assert not SimilarityHeuristic(threshold=0.9).same_root_cause(a, b)

    def test_cluster_is_transitive(self):
        # Given - a~b and b~c but not a~c
        heuristic = SimilarityHeuristic(threshold=0.5)
        items = [
            make_finding(1, "alpha beta gamma"),
            make_finding(2, "beta gamma delta"),
            make_finding(3, "gamma delta epsilon"),
            make_finding(4, "unrelated words here"),
        ]

        # When
        groups = heuristic.cluster(items)

        # Then
        assert [[f.id for f in g] for g in groups] == [[1, 2, 3], [4]]

    def test_cluster_with_custom_predicate(self):
        heuristic = SimilarityHeuristic()
        items = [
            make_finding(1, "alpha", path="src/a.py"),
            make_finding(2, "beta", path="src/b.py"),
            make_finding(3, "gamma", path="src/a.py"),
        ]
        groups = heuristic.cluster(items, related=lambda a, b: a.location.path == b.location.path)
        assert [[f.id for f in g] for g in groups] == [[1, 3], [2]]

    def test_mentions_path(self):
        heuristic = SimilarityHeuristic()
        assert heuristic.mentions_path("see src/money.py", "src/money.py")
        assert heuristic.mentions_path("money.py leaks floats", "src/money.py")
        assert not heuristic.mentions_path("anything", "")


class TestAggregator:
    def test_ids_follow_severity_then_category_then_input(self):
        # Given
        results = [
            AnalyzerResult(Category.STRUCTURE, [
                raw("God module mixes parsing and rendering", severity=Severity.MINOR, path="src/s1.py"),
                raw("Circular import between billing and orders", path="src/s2.py"),
            ]),
            AnalyzerResult(Category.NAMING, [
                raw("Single letter variable names in evaluator", category=Category.NAMING, severity=Severity.CRITICAL,
                    path="src/n1.py"),
                raw("Misleading function name calculate_total", category=Category.NAMING, path="src/n2.py"),
            ]),
        ]

        # When
        report = aggregate(results)

        # Then
        assert [f.description for f in report.findings] == [
            "Single letter variable names in evaluator",
            "Circular import between billing and orders",
            "Misleading function name calculate_total",
            "God module mixes parsing and rendering",
        ]
        assert report.ids == [1, 2, 3, 4]

    def test_same_location_merged_keeping_most_severe(self):
        # Given - two analyzers flag the same line
        results = [
            AnalyzerResult(Category.COMPLEXITY, [
                raw("Deeply nested loop", category=Category.COMPLEXITY, severity=Severity.MINOR,
                    line=10, details="Four levels deep."),
            ]),
            AnalyzerResult(Category.TESTABILITY, [
                raw("Hard to test branch logic", category=Category.TESTABILITY, line=10,
                    details="No seams."),
            ]),
        ]

        # When
        report = aggregate(results)

        # Then
        (finding,) = report.findings
        assert finding.description == "Hard to test branch logic"
        assert finding.severity == Severity.IMPORTANT
        assert finding.all_categories == (Category.TESTABILITY, Category.COMPLEXITY)
        assert "Four levels deep." in finding.details
        assert "No seams." in finding.details

    def test_same_root_cause_across_files_merged(self):
        results = [
            AnalyzerResult(Category.DUPLICATION, [
                raw("Duplicated currency rounding logic", category=Category.DUPLICATION, path="src/a.py"),
                raw("Duplicated currency rounding logic", category=Category.DUPLICATION, path="src/b.py"),
            ]),
        ]
        assert len(aggregate(results).findings) == 1

    def test_failed_analyzer_marked_incomplete(self):
        # Given
        results = [
            AnalyzerResult(Category.STRUCTURE, [raw("God module", path="src/app.py")]),
            AnalyzerResult(Category.COUPLING, status="failed", error="Agent timed out"),
        ]

        # When
        report = aggregate(results)

        # Then
        assert report.ids == [1]
        assert report.incomplete == [(Category.COUPLING, "Agent timed out")]

    def test_no_findings(self):
        report = aggregate([AnalyzerResult(Category.STRUCTURE)])
        assert report.findings == []
        assert report.date == "2026-10-18"
