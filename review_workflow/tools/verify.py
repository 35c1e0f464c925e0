"""Verification command runner: the pass/fail gate around every batch."""

import asyncio
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..utils import get_logger


@dataclass
class VerificationResult:
    """Captured result of one verification run."""
    command: str
    returncode: Optional[int]
    output: str
    duration_seconds: float = 0.0
    timed_out: bool = False

    @property
    def passed(self) -> bool:
        return self.returncode == 0 and not self.timed_out


class VerificationRunner:
    """
    Runs the approved verification command through the shell.

    The command is opaque: whatever the user approved in the plan is run
    verbatim in the working tree. stdout and stderr are captured together so
    the log records exactly what a human would have seen.
    """

    def __init__(self, work_dir: Optional[Path] = None, timeout: Optional[float] = None):
        self.work_dir = work_dir or Path.cwd()
        self.timeout = timeout
        self.logger = get_logger()

    async def run(self, command: str) -> VerificationResult:
        """
        Run the verification command and capture its output.

        Args:
            command: Shell command from the plan

        Returns:
            VerificationResult with exit code and combined output
        """
        self.logger.info(f"Running verification: {command}")
        started = time.monotonic()

        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=str(self.work_dir),
        )

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            stdout, _ = await process.communicate()
            output = stdout.decode(errors="replace")
            self.logger.error(f"Verification timed out after {self.timeout}s")
            return VerificationResult(
                command=command,
                returncode=process.returncode,
                output=output + f"\n[timed out after {self.timeout}s]",
                duration_seconds=time.monotonic() - started,
                timed_out=True,
            )

        result = VerificationResult(
            command=command,
            returncode=process.returncode,
            output=stdout.decode(errors="replace"),
            duration_seconds=time.monotonic() - started,
        )

        if result.passed:
            self.logger.info(f"Verification passed ({result.duration_seconds:.1f}s)")
        else:
            self.logger.warning(f"Verification failed with exit code {result.returncode}")
        return result
