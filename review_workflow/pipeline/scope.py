"""Scope & Context Resolver - what to analyze and why."""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..models import ScanContext
from ..utils import get_logger

CONTEXT_QUESTIONS = [
    ("purpose", "What is this codebase for?"),
    ("active_areas", "Which areas are under active development?"),
    ("pain_points", "What pain points should the review focus on?"),
]


@dataclass
class Scope:
    """Resolved analysis target."""
    path: Path
    display: str

    @property
    def is_file(self) -> bool:
        return self.path.is_file()


class ScopeResolver:
    """
    Determines the analysis target and collects free-text context.

    A missing path argument triggers a prompt; there is no default target.
    An invalid path is rejected and the user is asked again.
    """

    def __init__(
        self,
        input_fn: Callable[[str], str] = input,
        output_fn: Callable[[str], None] = print,
        base_dir: Optional[Path] = None,
    ):
        self.input_fn = input_fn
        self.output_fn = output_fn
        self.base_dir = base_dir or Path.cwd()
        self.logger = get_logger()

    def _check(self, raw: str) -> Optional[Path]:
        candidate = Path(raw).expanduser()
        if not candidate.is_absolute():
            candidate = self.base_dir / candidate
        if candidate.exists():
            return candidate.resolve()
        return None

    def resolve(self, argument: Optional[str] = None) -> Scope:
        """
        Resolve the scope from the command argument or by prompting.

        Args:
            argument: Path given on the command line, if any

        Returns:
            Scope pointing at an existing file or directory
        """
        raw = (argument or "").strip()
        while True:
            if not raw:
                raw = self.input_fn("Path to review: ").strip()
                if not raw:
                    self.output_fn("A path is required.")
                    continue

            path = self._check(raw)
            if path is not None:
                self.logger.info(f"Scope: {path}")
                return Scope(path=path, display=raw)

            self.output_fn(f"Path does not exist: {raw}")
            raw = ""

    def collect_context(self) -> ScanContext:
        """Ask the context questions. Blank answers render as "Not provided"."""
        answers = {}
        for key, question in CONTEXT_QUESTIONS:
            answer = self.input_fn(f"{question} ").strip()
            answers[key] = answer
        return ScanContext(**answers)
