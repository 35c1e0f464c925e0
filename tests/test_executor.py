"""Tests for the Batch Executor state machine.

Given-When-Then structure; agents, git and the verification command are
faked, the run directory is real.
"""

import asyncio

import pytest

from review_workflow.config import WorkflowConfig
from review_workflow.errors import ConflictUnresolved, PreconditionFailed, VerificationFailed
from review_workflow.models import Batch, BatchStatus, Complexity, Handoff
from review_workflow.orchestrator import BatchExecutor, commit_message

from fakes import FakeImplementer, FakeVerifier


def make_executor(run, fakes, today, **config):
    return BatchExecutor(
        run=run,
        implementer=fakes.implementer,
        approver=fakes.approver,
        verifier=fakes.verifier,
        git=fakes.git,
        config=WorkflowConfig(**config),
        day=today,
    )


def execute(executor):
    return asyncio.run(executor.execute())


class TestFullRun:
    """10 findings, 2 won't-fix, batches of 4/3/1 executed to the end."""

    def test_all_batches_resolve(self, scenario_run, fakes, today):
        # Given
        executor = make_executor(scenario_run, fakes, today)

        # When
        outcomes = [execute(executor) for _ in range(3)]

        # Then
        progress = scenario_run.read_progress()
        counts = progress.counts
        assert (counts.resolved, counts.wont_fix, counts.remaining, counts.total) == (8, 2, 0, 10)
        assert all(e.status == BatchStatus.DONE for e in progress.entries)
        assert [o.handoff for o in outcomes] == [Handoff.RESOLVE, Handoff.RESOLVE, Handoff.FINALIZE]
        assert len(fakes.git.commits) == 3
        assert len(scenario_run.batch_log_paths()) == 3

    def test_each_commit_lists_every_finding_id(self, scenario_run, fakes, today):
        # Given
        executor = make_executor(scenario_run, fakes, today)

        # When
        execute(executor)

        # Then
        message, exclude = fakes.git.commits[0]
        for fid in (1, 2, 3, 4):
            assert f"#{fid}" in message
        assert exclude == [scenario_run.path]

    def test_log_records_batch_findings_and_real_output(self, scenario_run, fakes, today):
        # Given
        fakes.verifier = FakeVerifier([(0, "baseline ok"), (0, "17 passed")])
        executor = make_executor(scenario_run, fakes, today)

        # When
        execute(executor)

        # Then
        (log,) = scenario_run.read_batch_logs()
        assert log.finding_ids == [1, 2, 3, 4]
        assert log.verification_output == "17 passed"
        assert log.commit == "c0ffee1"
        assert scenario_run.batch_log_paths()[0].name == "batch-1-naming-cleanup.md"

    def test_next_batch_promoted_after_commit(self, scenario_run, fakes, today):
        # Given
        executor = make_executor(scenario_run, fakes, today)

        # When
        outcome = execute(executor)

        # Then
        progress = scenario_run.read_progress()
        assert [e.status for e in progress.entries] == [BatchStatus.DONE, BatchStatus.NEXT, BatchStatus.PENDING]
        assert progress.get(1).commit == outcome.commit
        assert outcome.batch_number == 1

    def test_nothing_outstanding_hands_off_without_mutation(self, scenario_run, fakes, today):
        # Given - every batch already done
        executor = make_executor(scenario_run, fakes, today)
        for _ in range(3):
            execute(executor)
        before = scenario_run.progress_path.read_text()
        commits = len(fakes.git.commits)

        # When
        outcome = execute(executor)

        # Then
        assert outcome.handoff == Handoff.FINALIZE
        assert scenario_run.progress_path.read_text() == before
        assert len(fakes.git.commits) == commits


class TestVerificationGates:
    """Pre-batch and post-batch gate behavior."""

    def test_pre_gate_failure_changes_nothing(self, scenario_run, fakes, today):
        # Given - batch 1 done, then the tree goes red
        execute(make_executor(scenario_run, fakes, today))
        before = scenario_run.progress_path.read_text()
        fakes.verifier = FakeVerifier([(1, "FAILED test_invoice.py::test_total")])
        executor = make_executor(scenario_run, fakes, today)

        # When
        with pytest.raises(PreconditionFailed) as excinfo:
            execute(executor)

        # Then
        assert "FAILED test_invoice.py::test_total" in excinfo.value.output
        assert scenario_run.progress_path.read_text() == before
        assert len(fakes.git.commits) == 1
        assert len(scenario_run.batch_log_paths()) == 1
        assert fakes.implementer.applied == [[1], [2], [3], [4]]

    def test_post_gate_failure_is_repaired(self, scenario_run, fakes, today):
        # Given - pre-gate passes, first post-gate run fails
        fakes.verifier = FakeVerifier([(0, "ok"), (1, "E   NameError: name 'total' is not defined")])
        executor = make_executor(scenario_run, fakes, today)

        # When
        outcome = execute(executor)

        # Then
        assert fakes.implementer.repairs == 1
        assert outcome.handoff == Handoff.RESOLVE
        (log,) = scenario_run.read_batch_logs()
        assert any("repair attempt" in note for note in log.notes)

    def test_repair_exhaustion_leaves_batch_next(self, scenario_run, fakes, today):
        # Given - verification never recovers after the work
        fakes.verifier = FakeVerifier([(0, "ok")] + [(1, "still failing")] * 10)
        executor = make_executor(scenario_run, fakes, today, max_repair_attempts=2)

        # When
        with pytest.raises(VerificationFailed) as excinfo:
            execute(executor)

        # Then
        assert excinfo.value.attempts == 2
        assert fakes.implementer.repairs == 2
        assert fakes.git.commits == []
        assert scenario_run.batch_log_paths() == []
        assert scenario_run.read_progress().get(1).status == BatchStatus.NEXT


class TestMechanicalConflicts:
    """Concurrent units touching the same file."""

    def test_unresolved_conflict_blocks_commit(self, scenario_run, fakes, today):
        # Given - every unit also edits the same shared file
        fakes.implementer = FakeImplementer(shared_file="src/shared.py", reconcile_ok=False)
        executor = make_executor(scenario_run, fakes, today)

        # When
        with pytest.raises(ConflictUnresolved) as excinfo:
            execute(executor)

        # Then - detected before the post-batch verification, nothing committed
        assert excinfo.value.files == ["src/shared.py"]
        assert len(fakes.verifier.commands) == 1
        assert fakes.git.commits == []
        assert scenario_run.read_progress().get(1).status == BatchStatus.NEXT

    def test_reconciled_conflict_is_noted(self, scenario_run, fakes, today):
        # Given
        fakes.implementer = FakeImplementer(shared_file="src/shared.py", reconcile_ok=True)
        executor = make_executor(scenario_run, fakes, today)

        # When
        execute(executor)

        # Then
        assert fakes.implementer.reconciled == [["src/shared.py"]]
        (log,) = scenario_run.read_batch_logs()
        assert any("src/shared.py" in note for note in log.notes)


class TestArchitecturalBatch:
    """Design choice and stepwise implementation."""

    def test_chosen_design_is_implemented_stepwise(self, scenario_run, fakes, today):
        # Given - batches 1 and 2 already done
        executor = make_executor(scenario_run, fakes, today)
        execute(executor)
        execute(executor)
        fakes.approver.design_choice = 1

        # When
        outcome = execute(executor)

        # Then
        assert fakes.approver.design_requests == 1
        assert fakes.implementer.steps == ["Create the new module", "Move callers over"]
        log = scenario_run.read_batch_logs()[-1]
        assert log.kind == Complexity.ARCHITECTURAL
        assert log.notes[0].startswith("Design: Facade")
        assert log.changes[0].description == "Facade: Move callers over"
        assert outcome.handoff == Handoff.FINALIZE


class TestCommitMessage:
    def test_lists_all_ids(self):
        batch = Batch(number=2, name="Dead code cleanup", kind=Complexity.MECHANICAL, finding_ids=[5, 6, 7])
        message = commit_message("review: ", batch)
        assert message.splitlines()[0] == "review: batch 2: Dead code cleanup"
        assert "#5, #6, #7" in message


class TestResumeAfterInterruption:
    """A batch that was committed and logged is never executed twice."""

    def test_logged_batch_rebuilds_progress_instead_of_rerunning(self, scenario_run, fakes, today, monkeypatch):
        # Given - batch 1 committed and logged, then progress.md failed to save
        executor = make_executor(scenario_run, fakes, today)
        write_progress = scenario_run.write_progress

        def interrupted(progress):
            monkeypatch.setattr(scenario_run, "write_progress", write_progress)
            raise OSError("disk full")

        monkeypatch.setattr(scenario_run, "write_progress", interrupted)
        with pytest.raises(OSError):
            execute(executor)
        applied = list(fakes.implementer.applied)

        # When
        outcome = execute(executor)

        # Then
        progress = scenario_run.read_progress()
        assert len(fakes.git.commits) == 1
        assert fakes.implementer.applied == applied
        assert [e.status for e in progress.entries] == [BatchStatus.DONE, BatchStatus.NEXT, BatchStatus.PENDING]
        assert progress.get(1).commit == "c0ffee1"
        assert outcome.handoff == Handoff.RESOLVE
        assert outcome.batch_number == 1
        assert "batch 2" in outcome.message
