"""History command -- show or clear the change history."""

from __future__ import annotations

from typing import Optional

import typer

from extmgr.output import error, get_output, info, success


def history_command(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Maximum entries to show."),
    action: Optional[str] = typer.Option(
        None,
        "--action",
        "-a",
        help="Filter by action: extension_toggle, package_install, package_update, package_remove.",
    ),
    succeeded: Optional[bool] = typer.Option(
        None, "--success/--failed", help="Only successful or only failed changes."
    ),
    clear: bool = typer.Option(False, "--clear", help="Delete the history file."),
) -> None:
    """Show recent changes, newest first.

    Example::

        extmgr history
        extmgr history --failed --action package_remove --json
    """
    from extmgr.config import get_data_dir, resolve_config
    from extmgr.exceptions import ConfigError
    from extmgr.history import HISTORY_FILENAME, ChangeHistory
    from extmgr.models import ChangeAction

    try:
        config = resolve_config(cli_tool=ctx.obj.get("tool") if ctx.obj else None)
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    history = ChangeHistory(
        get_data_dir() / HISTORY_FILENAME,
        max_entries=config.history.max_entries,
        enabled=config.history.enabled,
    )

    if clear:
        force = ctx.obj.get("force", False) if ctx.obj else False
        if not force and not typer.confirm("Clear the change history?"):
            info("Cancelled.")
            raise typer.Exit()
        history.clear()
        success("History cleared.")
        return

    kind: Optional[ChangeAction] = None
    if action is not None:
        try:
            kind = ChangeAction(action)
        except ValueError:
            error(f"Unknown action: {action}")
            raise typer.Exit(code=2) from None

    entries = history.query(action=kind, success=succeeded, limit=limit)
    if not entries:
        info("No history entries.")
        return

    rows = []
    for entry in entries:
        if entry.action is ChangeAction.EXTENSION_TOGGLE:
            detail = f"{entry.extension_id}: {entry.from_state.value if entry.from_state else '?'} -> "
            detail += entry.to_state.value if entry.to_state else "?"
        else:
            detail = entry.package_name or ""
        rows.append(
            [
                entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
                entry.action.value,
                entry.scope.value if entry.scope else "",
                entry.source,
                detail,
                "ok" if entry.success else (entry.error or "failed"),
            ]
        )

    get_output().print_table(
        ["Time", "Action", "Scope", "Source", "Detail", "Result"],
        rows,
        title="Change history",
    )
