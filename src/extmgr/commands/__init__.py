"""Built-in CLI commands and the helpers they share."""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING, Any, Coroutine, Optional, TypeVar

import typer

from extmgr.models import Scope

if TYPE_CHECKING:
    from extmgr.session import Session

T = TypeVar("T")


def interactive(ctx: typer.Context) -> bool:
    """True when prompts may be shown (stdin is a TTY and ``--no-input`` is off)."""
    no_input = ctx.obj.get("no_input", False) if ctx.obj else False
    return not no_input and sys.stdin.isatty()


def open_session(ctx: typer.Context) -> Session:
    """Build a :class:`~extmgr.session.Session` from the root options.

    Raises:
        typer.Exit: With the error's exit code if the config file is invalid.
    """
    from extmgr.config import resolve_config
    from extmgr.exceptions import ExtmgrError
    from extmgr.output import error
    from extmgr.prompts import TyperPrompter
    from extmgr.session import Session

    obj = ctx.obj or {}
    try:
        config = resolve_config(cli_tool=obj.get("tool"))
    except ExtmgrError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    prompter = TyperPrompter(force=obj.get("force", False)) if interactive(ctx) else None
    return Session.create(config=config, prompter=prompter)


def run(coro: Coroutine[Any, Any, T]) -> T:
    """Run *coro* to completion, turning :class:`ExtmgrError` into a clean exit."""
    from extmgr.exceptions import ExtmgrError
    from extmgr.output import error

    try:
        return asyncio.run(coro)
    except ExtmgrError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def parse_scope(value: Optional[str]) -> Optional[Scope]:
    """Parse a ``--scope`` option value.

    Raises:
        typer.BadParameter: If *value* is not ``global`` or ``project``.
    """
    if value is None:
        return None
    try:
        return Scope(value.lower())
    except ValueError:
        raise typer.BadParameter(f"Expected 'global' or 'project', got '{value}'.") from None
