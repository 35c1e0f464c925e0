"""Exception taxonomy for the review workflow.

Every error here halts the current invocation before any forward state
transition. None of them is ever downgraded to a warning.
"""

from typing import Optional


class WorkflowError(Exception):
    """Base class for all workflow errors surfaced to the user."""


class PreconditionFailed(WorkflowError):
    """Verification failed before any batch work started. Nothing was modified."""

    def __init__(self, command: str, output: str, returncode: Optional[int] = None):
        self.command = command
        self.output = output
        self.returncode = returncode
        super().__init__(
            f"Pre-batch verification failed (exit {returncode}): {command}\n{output}"
        )


class VerificationFailed(WorkflowError):
    """Verification kept failing after batch work; the batch stays unresolved."""

    def __init__(self, command: str, output: str, attempts: int):
        self.command = command
        self.output = output
        self.attempts = attempts
        super().__init__(
            f"Verification still failing after {attempts} repair attempts: {command}\n{output}"
        )


class ConflictUnresolved(WorkflowError):
    """Parallel units edited the same files and reconciliation did not succeed."""

    def __init__(self, files):
        self.files = sorted(files)
        super().__init__(f"Conflicting edits not resolved in: {', '.join(self.files)}")


class MissingDocumentError(WorkflowError):
    """A prerequisite document is absent."""

    def __init__(self, document: str, command: str):
        self.document = document
        self.command = command
        super().__init__(
            f"{document} not found. Run `review-workflow {command}` to produce it."
        )


class DocumentFormatError(WorkflowError):
    """A persisted document does not match its schema."""


class WriteOnceViolation(WorkflowError):
    """Attempt to rewrite a write-once document."""


class ApprovalRequired(WorkflowError):
    """A gated transition was attempted without explicit human approval."""


class InvariantViolation(WorkflowError):
    """Persisted documents disagree with each other."""


class GitError(WorkflowError):
    """A git operation failed."""

    def __init__(self, args, output: str):
        self.command = ["git", *args]
        self.output = output
        super().__init__(f"{' '.join(self.command)} failed:\n{output}")
