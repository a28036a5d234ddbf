"""Operator prompts guarding reconfiguration and irreversible actions."""

import sys

import click

from hawkradeploy.errors import DeployError, OperationCancelled
from hawkradeploy.errors_catalog import actionable_error


class ConfirmationGate:
    """Asks the operator before anything is overwritten or destroyed."""

    def __init__(self, console, stdin=None, prompt=click.prompt):
        self.console = console
        self.stdin = stdin
        self.prompt = prompt

    def _stream(self):
        return self.stdin if self.stdin is not None else sys.stdin

    def is_interactive(self) -> bool:
        stream = self._stream()
        try:
            return bool(stream.isatty())
        except (AttributeError, ValueError):
            return False

    def ensure_interactive(self, command: str):
        if not self.is_interactive():
            raise DeployError(actionable_error("not_a_terminal", command=command))

    def require_phrase(self, phrase: str, command: str = "uninstall"):
        """Requires the exact phrase to be typed. Never runs unattended."""
        self.ensure_interactive(command)

        answer = self.prompt(
            f"  Type '{phrase}' to confirm",
            default="",
            show_default=False,
            prompt_suffix=": ",
        )
        if (answer or "").strip() != phrase:
            raise OperationCancelled("Uninstall cancelled. Your installation is untouched.")

    def confirm(self, question: str, cancel_message: str, command: str = "install"):
        self.ensure_interactive(command)

        answer = self.prompt(
            f"    {question} [y/N]",
            default="",
            show_default=False,
            prompt_suffix=": ",
        )
        if (answer or "").strip().lower() not in ("y", "yes"):
            raise OperationCancelled(cancel_message)
