"""Shared fixtures."""

from datetime import date
from types import SimpleNamespace

import pytest

from fakes import FakeApprover, FakeGit, FakeImplementer, FakeVerifier, scenario_documents, write_run


@pytest.fixture
def today():
    return date(2026, 10, 18)


@pytest.fixture
def scenario_run(tmp_path):
    """Triaged run: 10 findings, 2 won't-fix, batches of 4/3/1."""
    report, plan = scenario_documents()
    return write_run(tmp_path / ".reviews" / "2026-10-18", report, plan)


@pytest.fixture
def fakes():
    return SimpleNamespace(
        verifier=FakeVerifier(),
        git=FakeGit(),
        implementer=FakeImplementer(),
        approver=FakeApprover(),
    )
