"""Human approval gates.

Every gate blocks until the user gives an explicit, recognizable answer.
There is no timeout and no default; anything ambiguous asks again.
"""

from typing import Callable, Dict, List, Protocol

from ..models import Batch, BatchProgress
from .units import DesignOption


def ask(
    prompt: str,
    choices: Dict[str, str],
    input_fn: Callable[[str], str] = input,
    output_fn: Callable[[str], None] = print,
) -> str:
    """
    Prompt until the answer matches one of the choices exactly (case-insensitive).

    Args:
        prompt: Question shown to the user
        choices: Accepted answer -> returned value

    Returns:
        The value of the chosen answer
    """
    accepted = ", ".join(f"`{c}`" for c in choices)
    while True:
        answer = input_fn(prompt).strip().lower()
        if answer in choices:
            return choices[answer]
        output_fn(f"Please answer one of: {accepted}.")


class Approver(Protocol):
    """Decisions the executor and finalizer cannot make on their own."""

    def choose_design(self, batch: Batch, options: List[DesignOption]) -> DesignOption:
        ...

    def confirm_close_out(self, outstanding: List[BatchProgress]) -> bool:
        """True closes the run out; False continues resolving."""
        ...


class ConsoleApprover:
    """Approver that asks on the terminal."""

    def __init__(
        self,
        input_fn: Callable[[str], str] = input,
        output_fn: Callable[[str], None] = print,
    ):
        self.input_fn = input_fn
        self.output_fn = output_fn

    def choose_design(self, batch: Batch, options: List[DesignOption]) -> DesignOption:
        self.output_fn(f"\nBatch {batch.number}: {batch.name} needs a design decision.\n")
        choices = {}
        for index, option in enumerate(options, start=1):
            marker = " (recommended)" if option.recommended else ""
            self.output_fn(f"{index}. {option.name}{marker}")
            self.output_fn(f"   {option.summary}")
            self.output_fn(f"   Tradeoffs: {option.tradeoffs}")
            choices[str(index)] = option
            choices[option.name.strip().lower()] = option
        self.output_fn("")
        return ask("Choose an option by number or name: ", choices, self.input_fn, self.output_fn)

    def confirm_close_out(self, outstanding: List[BatchProgress]) -> bool:
        self.output_fn("\nBatches still outstanding:")
        for entry in outstanding:
            ids = ", ".join(f"#{i}" for i in entry.finding_ids)
            self.output_fn(f"- Batch {entry.number}: {entry.name} ({ids})")
        self.output_fn("")
        return ask(
            "Type `continue` to keep resolving or `close` to defer them and finish: ",
            {"continue": False, "close": True},
            self.input_fn,
            self.output_fn,
        )
