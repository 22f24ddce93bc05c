"""Interactive prompts used by the package coordinators.

Coordinators never talk to the terminal directly. They receive an optional
:class:`Prompter`; when it is ``None`` the non-interactive defaults apply
(global scope, no confirmation).
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

import typer


class Prompter(Protocol):
    """Selection and confirmation dialogs."""

    def select(self, title: str, options: Sequence[str]) -> Optional[str]:
        """Return the chosen option, or ``None`` if the user backed out."""
        ...

    def confirm(self, title: str, message: str) -> bool:
        ...


class TyperPrompter:
    """:class:`Prompter` backed by ``typer.prompt`` / ``typer.confirm``.

    Args:
        force: Answer every confirmation with yes without asking.
    """

    def __init__(self, force: bool = False) -> None:
        self.force = force

    def select(self, title: str, options: Sequence[str]) -> Optional[str]:
        typer.echo(title, err=True)
        for i, option in enumerate(options, 1):
            typer.echo(f"  {i}. {option}", err=True)
        choice = typer.prompt("Select number", default="1", err=True)
        try:
            index = int(choice) - 1
        except ValueError:
            return None
        if 0 <= index < len(options):
            return options[index]
        return None

    def confirm(self, title: str, message: str) -> bool:
        if self.force:
            return True
        typer.echo(title, err=True)
        return typer.confirm(message, default=False, err=True)
