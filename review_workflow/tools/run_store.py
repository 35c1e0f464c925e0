"""Persisted run layout: one directory per workflow run.

    <runs_dir>/2026-10-18/        first run of the day
    <runs_dir>/2026-10-18-2/      second run of the same day
        report.md                 write-once
        plan.md                   write-once (explicit overwrite on re-triage)
        progress.md               the only rewritten document
        batch-1-<slug>.md         write-once, one per completed batch
"""

import os
import re
import tempfile
from datetime import date as Date
from pathlib import Path
from typing import List, Optional, Tuple

from ..errors import MissingDocumentError, WriteOnceViolation
from ..models import Batch, BatchResolutionLog, Plan, Progress, Report
from ..utils import get_logger
from .documents import (
    parse_batch_log,
    parse_plan,
    parse_progress,
    parse_report,
    render_batch_log,
    render_plan,
    render_progress,
    render_report,
)

REPORT = "report.md"
PLAN = "plan.md"
PROGRESS = "progress.md"

_run_name = re.compile(r'^(\d{4}-\d{2}-\d{2})(?:-(\d+))?$')
_batch_log_name = re.compile(r'^batch-(\d+)-.*\.md$')


def _write_once(path: Path, content: str) -> None:
    try:
        with open(path, "x", encoding="utf-8") as f:
            f.write(content)
    except FileExistsError:
        raise WriteOnceViolation(f"{path.name} already exists and is write-once: {path}")


def _replace(path: Path, content: str) -> None:
    """Rewrite a file atomically so a crash never leaves half a checkpoint."""
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


class RunDirectory:
    """Reads and writes the documents of a single run."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.logger = get_logger()

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def report_path(self) -> Path:
        return self.path / REPORT

    @property
    def plan_path(self) -> Path:
        return self.path / PLAN

    @property
    def progress_path(self) -> Path:
        return self.path / PROGRESS

    def has_report(self) -> bool:
        return self.report_path.exists()

    def has_plan(self) -> bool:
        return self.plan_path.exists()

    def has_progress(self) -> bool:
        return self.progress_path.exists()

    # report.md

    def read_report(self) -> Report:
        if not self.has_report():
            raise MissingDocumentError(REPORT, "review")
        return parse_report(self.report_path.read_text(encoding="utf-8"))

    def write_report(self, report: Report) -> Path:
        _write_once(self.report_path, render_report(report))
        self.logger.info(f"Wrote {self.report_path}")
        return self.report_path

    # plan.md

    def read_plan(self) -> Plan:
        if not self.has_plan():
            raise MissingDocumentError(PLAN, "triage")
        return parse_plan(self.plan_path.read_text(encoding="utf-8"))

    def write_plan(self, plan: Plan, overwrite: bool = False) -> Path:
        """Write the approved plan. Overwriting is a deliberate re-triage."""
        content = render_plan(plan)
        if overwrite and self.has_plan():
            if self.batch_log_paths():
                raise WriteOnceViolation(
                    "Cannot re-triage: batches have already been resolved in this run"
                )
            self.logger.warning(f"Overwriting {self.plan_path} (re-triage)")
            _replace(self.plan_path, content)
        else:
            _write_once(self.plan_path, content)
        self.logger.info(f"Wrote {self.plan_path}")
        return self.plan_path

    # progress.md

    def read_progress(self) -> Progress:
        if not self.has_progress():
            raise MissingDocumentError(PROGRESS, "triage")
        return parse_progress(self.progress_path.read_text(encoding="utf-8"))

    def write_progress(self, progress: Progress) -> Path:
        _replace(self.progress_path, render_progress(progress))
        self.logger.debug(f"Rewrote {self.progress_path}")
        return self.progress_path

    # batch-N-<slug>.md

    def batch_log_path(self, batch: Batch) -> Path:
        return self.path / batch.log_filename

    def write_batch_log(self, batch: Batch, log: BatchResolutionLog) -> Path:
        path = self.batch_log_path(batch)
        _write_once(path, render_batch_log(log))
        self.logger.info(f"Wrote {path}")
        return path

    def batch_log_paths(self) -> List[Path]:
        found = []
        for path in self.path.glob("batch-*.md"):
            match = _batch_log_name.match(path.name)
            if match:
                found.append((int(match.group(1)), path))
        return [path for _, path in sorted(found)]

    def read_batch_logs(self) -> List[BatchResolutionLog]:
        return [parse_batch_log(p.read_text(encoding="utf-8")) for p in self.batch_log_paths()]


class RunStore:
    """
    Locates and creates run directories under a runs root.

    Runs are named by date; a same-day collision gets a numeric suffix.
    The latest run is the greatest (date, suffix).
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.logger = get_logger()

    @staticmethod
    def _sort_key(path: Path) -> Optional[Tuple[str, int]]:
        match = _run_name.match(path.name)
        if not match:
            return None
        return match.group(1), int(match.group(2) or 1)

    def runs(self) -> List[RunDirectory]:
        if not self.root.is_dir():
            return []
        keyed = [
            (self._sort_key(p), p) for p in self.root.iterdir()
            if p.is_dir() and self._sort_key(p) is not None
        ]
        return [RunDirectory(p) for _, p in sorted(keyed)]

    def latest(self) -> Optional[RunDirectory]:
        runs = self.runs()
        return runs[-1] if runs else None

    def create(self, day: Optional[Date] = None) -> RunDirectory:
        day = day or Date.today()
        base = day.isoformat()
        self.root.mkdir(parents=True, exist_ok=True)

        suffix = 1
        while True:
            name = base if suffix == 1 else f"{base}-{suffix}"
            path = self.root / name
            try:
                path.mkdir()
            except FileExistsError:
                suffix += 1
                continue
            self.logger.info(f"Created run directory {path}")
            return RunDirectory(path)

    def resolve(self, run_dir: Optional[str] = None) -> RunDirectory:
        """Explicit run directory, or the latest run."""
        if run_dir:
            path = Path(run_dir)
            if not path.is_dir():
                raise MissingDocumentError(f"Run directory {run_dir}", "review")
            return RunDirectory(path)
        latest = self.latest()
        if latest is None:
            raise MissingDocumentError(f"No review run under {self.root}; {REPORT}", "review")
        return latest
