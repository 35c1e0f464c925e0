"""Tests for command routing, status and progress rebuild."""

import asyncio
import sys

import pytest

from review_workflow import main as cli
from review_workflow.config import WorkflowConfig
from review_workflow.errors import MissingDocumentError
from review_workflow.models import (
    AnalyzerResult,
    BatchStatus,
    Category,
    Handoff,
    Location,
    RawFinding,
    ScanContext,
    Severity,
)
from review_workflow.orchestrator import BatchExecutor, CompletionFinalizer
from review_workflow.orchestrator.workflow import ReviewWorkflow, next_handoff
from review_workflow.pipeline import run_analyzers
from review_workflow.pipeline.scope import Scope

from fakes import ScriptedInput


class FakeAnalyzer:
    """One structure finding; the coupling analyzer crashes."""

    async def analyze(self, category, scope, context):
        if category == Category.COUPLING:
            raise RuntimeError("agent crashed")
        if category != Category.STRUCTURE:
            return AnalyzerResult(category)
        return AnalyzerResult(category, [RawFinding(
            description="God module mixes parsing and rendering",
            severity=Severity.IMPORTANT,
            category=category,
            location=Location("src/app.py", 1),
        )])


def workflow_for(tmp_path, fakes, today, answers=()):
    workflow = ReviewWorkflow(
        work_dir=tmp_path,
        approver=fakes.approver,
        input_fn=ScriptedInput(answers),
        output_fn=lambda _: None,
        day=today,
    )
    workflow.executor = lambda run: BatchExecutor(
        run=run,
        implementer=fakes.implementer,
        approver=fakes.approver,
        verifier=fakes.verifier,
        git=fakes.git,
        day=today,
    )
    workflow.finalizer = lambda run: CompletionFinalizer(
        run, fakes.approver, fakes.git, day=today, output_fn=lambda _: None,
    )
    return workflow


class TestReview:
    def test_report_written_with_incomplete_category(self, tmp_path, fakes, today):
        # Given
        (tmp_path / "src").mkdir()
        workflow = workflow_for(tmp_path, fakes, today, answers=["Billing service", "", ""])

        # When
        outcome = workflow.review("src", analyzer=FakeAnalyzer())

        # Then
        run = workflow.store.latest()
        report = run.read_report()
        assert outcome.handoff == Handoff.TRIAGE
        assert run.name == "2026-10-18"
        assert report.ids == [1]
        assert report.context.purpose == "Billing service"
        assert report.incomplete == [(Category.COUPLING, "agent crashed")]

    def test_every_category_analyzed(self, tmp_path):
        results = asyncio.run(run_analyzers(
            FakeAnalyzer(), Scope(path=tmp_path, display="."), ScanContext(), max_parallel=2,
        ))
        assert [r.category for r in results] == list(Category)
        assert [r.category for r in results if r.failed] == [Category.COUPLING]


class TestRouting:
    def test_report_only_hands_off_to_triage(self, tmp_path, scenario_run):
        scenario_run.plan_path.unlink()
        scenario_run.progress_path.unlink()
        assert next_handoff(scenario_run).handoff == Handoff.TRIAGE

    def test_resolve_without_plan_fails(self, tmp_path, scenario_run, fakes, today):
        scenario_run.plan_path.unlink()
        scenario_run.progress_path.unlink()
        with pytest.raises(MissingDocumentError, match="plan.md"):
            workflow_for(tmp_path, fakes, today).resolve()

    def test_resolve_runs_one_batch_then_finalizes(self, tmp_path, scenario_run, fakes, today):
        # Given
        workflow = workflow_for(tmp_path, fakes, today)

        # When
        outcomes = [workflow.resolve() for _ in range(4)]

        # Then
        assert [o.handoff for o in outcomes] == [
            Handoff.RESOLVE, Handoff.RESOLVE, Handoff.FINALIZE, Handoff.DONE,
        ]
        assert next_handoff(scenario_run).handoff == Handoff.DONE

    def test_complete_closes_out_early(self, tmp_path, scenario_run, fakes, today):
        outcome = workflow_for(tmp_path, fakes, today).complete()
        assert outcome.handoff == Handoff.DONE
        assert fakes.approver.close_out_requests == [[1, 2, 3]]


class TestStatusAndRebuild:
    def test_status_lists_batches_and_next_step(self, tmp_path, scenario_run, fakes, today):
        text = workflow_for(tmp_path, fakes, today).status()
        assert "- 1. Naming cleanup: next" in text
        assert "- Won't fix: 2" in text
        assert "batch 1: Naming cleanup" in text

    def test_rebuild_recovers_corrupt_progress(self, tmp_path, scenario_run, fakes, today):
        # Given - batch 1 done, then progress.md is damaged
        workflow = workflow_for(tmp_path, fakes, today)
        workflow.resolve()
        scenario_run.progress_path.write_text("garbage\n")

        # When
        outcome = workflow.rebuild()

        # Then
        progress = scenario_run.read_progress()
        assert [e.status for e in progress.entries] == [BatchStatus.DONE, BatchStatus.NEXT, BatchStatus.PENDING]
        assert progress.get(1).commit == "c0ffee1"
        assert outcome.batch_number == 2

    def test_rebuild_keeps_closed_run_closed(self, tmp_path, scenario_run, fakes, today):
        workflow = workflow_for(tmp_path, fakes, today)
        workflow.complete()
        outcome = workflow.rebuild()
        assert outcome.handoff == Handoff.DONE
        assert scenario_run.read_progress().counts.deferred == 8


class TestConfig:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("REVIEW_RUNS_DIR", "audits")
        monkeypatch.setenv("REVIEW_MAX_REPAIR_ATTEMPTS", "2")
        monkeypatch.setenv("REVIEW_VERIFY_TIMEOUT", "90")
        config = WorkflowConfig.from_env()
        assert config.runs_dir == "audits"
        assert config.max_repair_attempts == 2
        assert config.verify_timeout == 90.0
        assert config.classifier == "heuristic"


class TestCli:
    def test_status_command(self, tmp_path, scenario_run, monkeypatch, capsys):
        # Given
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("REVIEW_RUNS_DIR", raising=False)
        monkeypatch.delenv("REVIEW_GIT_ROOT", raising=False)
        monkeypatch.setattr(sys, "argv", ["review-workflow", "status"])

        # When
        with pytest.raises(SystemExit) as excinfo:
            cli.main()

        # Then
        assert excinfo.value.code == 0
        assert "Naming cleanup: next" in capsys.readouterr().out

    def test_missing_run_exits_nonzero(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("REVIEW_RUNS_DIR", raising=False)
        monkeypatch.delenv("REVIEW_GIT_ROOT", raising=False)
        monkeypatch.setattr(sys, "argv", ["review-workflow", "resolve"])
        with pytest.raises(SystemExit) as excinfo:
            cli.main()
        assert excinfo.value.code == 1
