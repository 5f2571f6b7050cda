"""
Operator interaction for the restore procedure.

The manager never calls input() itself; it asks an operator object. The
console implementation prompts on the terminal, tests pass a scripted one.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Protocol

from wrtgist.gist.selection import parse_selection


class Operator(Protocol):
    """Decisions the restore procedure needs from a human."""

    def choose(self, prompt: str, options: Sequence[str]) -> int:
        """Return the 0-based index of the chosen option."""
        ...

    def confirm(self, prompt: str, default: bool = False) -> bool:
        """Return True if the operator agrees."""
        ...


class ConsoleOperator:
    """
    Terminal prompts.

    An invalid menu choice raises InvalidSelectionError; there is no
    re-prompt. With assume_yes, confirmations are answered "yes" without
    asking.
    """

    def __init__(
        self,
        assume_yes: bool = False,
        input_func: Callable[[str], str] = input,
        print_func: Callable[[str], None] = print,
    ) -> None:
        self.assume_yes = assume_yes
        self._input = input_func
        self._print = print_func

    def choose(self, prompt: str, options: Sequence[str]) -> int:
        self._print(prompt)
        for number, option in enumerate(options, start=1):
            self._print(f"  {number}) {option}")
        raw = self._input(f"Select [1-{len(options)}]: ")
        return parse_selection(raw, len(options))

    def confirm(self, prompt: str, default: bool = False) -> bool:
        if self.assume_yes:
            return True
        hint = "[Y/n]" if default else "[y/N]"
        response = self._input(f"{prompt} {hint}: ").strip().lower()
        if not response:
            return default
        return response in ("y", "yes")
