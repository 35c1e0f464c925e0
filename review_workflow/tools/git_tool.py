"""Git wrapper for batch commits."""

import os
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional

from ..errors import GitError
from ..utils import get_logger


class GitTool:
    """
    Thin wrapper over the git CLI for the working tree under review.

    Handles:
    - Listing files touched since the last commit
    - One atomic commit per batch (run documents excluded)
    - The closing commit of the run directory
    """

    def __init__(self, work_dir: Optional[Path] = None):
        self.work_dir = Path(work_dir or Path.cwd())
        self.logger = get_logger()

    def _run(self, *args: str) -> str:
        result = subprocess.run(
            ["git", *args],
            cwd=str(self.work_dir),
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            raise GitError(args, (result.stdout + result.stderr).strip())
        return result.stdout

    def head(self) -> str:
        return self._run("rev-parse", "--short", "HEAD").strip()

    def changed_files(self, exclude: Iterable[Path] = ()) -> List[str]:
        """Paths with uncommitted changes (tracked or untracked)."""
        excluded = [self._relative(p) for p in exclude]
        files = []
        for line in self._run("status", "--porcelain", "--untracked-files=all").splitlines():
            path = line[3:].strip()
            if " -> " in path:
                path = path.split(" -> ", 1)[1]
            path = path.strip('"')
            if any(path == e or path.startswith(e.rstrip("/") + "/") for e in excluded):
                continue
            files.append(path)
        return files

    def commit_all(self, message: str, exclude: Iterable[Path] = ()) -> str:
        """
        Stage every working tree change except the excluded paths and commit.

        Args:
            message: Commit message
            exclude: Paths (e.g. the run directory) that must stay out

        Returns:
            Short SHA of the new commit
        """
        pathspec = ["."] + [f":(exclude){self._relative(p)}" for p in exclude]
        self._run("add", "-A", "--", *pathspec)
        if self.changed_files(exclude):
            self._run("commit", "-m", message)
        else:
            # A batch whose fixes were already in place still gets its one commit
            self.logger.warning(f"No file changes to commit; recording an empty commit: {message.splitlines()[0]}")
            self._run("commit", "--allow-empty", "-m", message)
        sha = self.head()
        self.logger.info(f"Committed {sha}: {message.splitlines()[0]}")
        return sha

    def commit_paths(self, paths: Iterable[Path], message: str) -> str:
        """Stage only the given paths and commit them."""
        relative = [self._relative(p) for p in paths]
        self._run("add", "-A", "--", *relative)
        self._run("commit", "-m", message, "--", *relative)
        sha = self.head()
        self.logger.info(f"Committed {sha}: {message.splitlines()[0]}")
        return sha

    def _relative(self, path: Path) -> str:
        path = Path(path)
        if not path.is_absolute():
            return str(path)
        return os.path.relpath(str(path), str(self.work_dir))
