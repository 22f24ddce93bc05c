"""Package commands -- list, install, update, remove, and check for updates.

All mutations go through the package-management tool (``pi`` by default,
see ``--tool``). Every attempt is recorded in the change history.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Optional

import typer

from extmgr.commands import open_session, parse_scope, run
from extmgr.output import error, get_output, info, success, warning

if TYPE_CHECKING:
    from extmgr.updates import UpdateInfo


def packages_command(
    ctx: typer.Context,
    scope: Optional[str] = typer.Option(
        None, "--scope", "-s", help="Only show one scope: global or project."
    ),
) -> None:
    """List installed packages in both scopes.

    Example::

        extmgr packages
        extmgr packages --scope global --plain
    """
    from extmgr.listing import packages_in_scope
    from extmgr.packages import PackageCoordinator

    wanted = parse_scope(scope)
    session = open_session(ctx)
    try:
        packages = run(PackageCoordinator(session).list_installed_packages())
    finally:
        session.close()

    if wanted is not None:
        packages = packages_in_scope(packages, wanted)
    if not packages:
        info("No packages installed.")
        return

    get_output().print_table(
        ["Scope", "Name", "Source", "Version"],
        [[p.scope.value, p.name, p.source, p.version or ""] for p in packages],
        title="Installed packages",
    )


def install_command(
    ctx: typer.Context,
    source: str = typer.Argument(
        help="npm name, npm:/git: source, local path, or GitHub link to a .ts file."
    ),
    project: Optional[bool] = typer.Option(
        None, "--project/--global", help="Install scope (asks when omitted in a terminal)."
    ),
) -> None:
    """Install a package or a single-file extension.

    Example::

        extmgr install pi-extmgr
        extmgr install git@github.com:me/ext.git --project
        extmgr install https://github.com/me/repo/blob/main/ext.ts --global
    """
    from extmgr.models import Scope
    from extmgr.packages import InstallStatus, PackageInstaller

    scope = None if project is None else (Scope.PROJECT if project else Scope.GLOBAL)
    session = open_session(ctx)
    try:
        outcome = run(PackageInstaller(session).install_package(source, scope))
    finally:
        session.close()

    if outcome.status is InstallStatus.CANCELLED:
        info("Installation cancelled.")
        return
    if outcome.path is not None:
        success(f"Installed {outcome.path.name} to {outcome.path}")
    else:
        success(f"Installed {outcome.source} ({outcome.scope.value})")
    if outcome.warning is not None:
        warning(str(outcome.warning))


def update_command(
    ctx: typer.Context,
    source: Optional[str] = typer.Argument(
        None, help="Package to update. Updates every package when omitted."
    ),
) -> None:
    """Update one package, or all of them.

    Example::

        extmgr update npm:demo
        extmgr update
    """
    from extmgr.packages import PackageUpdater, UpdateStatus

    session = open_session(ctx)
    updater = PackageUpdater(session)
    try:
        if source is None:
            outcome = run(updater.update_packages())
        else:
            outcome = run(updater.update_package(source))
    finally:
        session.close()

    if outcome.status is UpdateStatus.UP_TO_DATE:
        if source is None:
            info("All packages are already up to date.")
        else:
            info(f"{source} is already up to date (or pinned).")
    else:
        success("Packages updated." if source is None else f"Updated {source}")


def remove_command(
    ctx: typer.Context,
    source: str = typer.Argument(help="Package source, as typed at install or as listed."),
    scope: Optional[str] = typer.Option(
        None,
        "--scope",
        "-s",
        help="When installed in both scopes: both, global, or project.",
    ),
) -> None:
    """Remove a package.

    Exits with code 5 when some targets were removed and others failed, and
    with code 4 when every target failed.

    Example::

        extmgr remove npm:demo
        extmgr remove ./vendor/ext --scope project
    """
    from extmgr.exit_codes import EXIT_COMMAND_FAILED, EXIT_PARTIAL_FAILURE
    from extmgr.packages import PackageRemover

    session = open_session(ctx)
    try:
        outcome = run(PackageRemover(session).remove_package(source, scope.lower() if scope else None))
    finally:
        session.close()

    if outcome.cancelled:
        info("Removal cancelled.")
        return
    if not outcome.targets:
        info("Nothing to remove.")
        return

    for message in outcome.errors:
        error(message)
    if outcome.remaining_scopes:
        scopes = ", ".join(s.value for s in outcome.remaining_scopes)
        warning(f"Removed from selected scope(s). Still installed in: {scopes}.")
    elif not outcome.errors:
        success(f"Removed {source}.")
    if outcome.warning is not None:
        warning(str(outcome.warning))

    if outcome.errors:
        raise typer.Exit(code=EXIT_PARTIAL_FAILURE if outcome.changed else EXIT_COMMAND_FAILED)


def _show_updates(updates: list[UpdateInfo]) -> None:
    get_output().print_table(
        ["Scope", "Name", "Installed", "Latest"],
        [[u.scope.value, u.name, u.installed, u.latest] for u in updates],
        title="Updates available",
    )


async def _wait_forever() -> None:
    await asyncio.Event().wait()


def outdated_command(
    ctx: typer.Context,
    watch: bool = typer.Option(
        False, "--watch", "-w", help="Keep checking in the background until interrupted."
    ),
    interval: Optional[float] = typer.Option(
        None, "--interval", help="Seconds between checks with --watch (default: updates.interval_seconds)."
    ),
) -> None:
    """Show npm packages with a newer registry version.

    With ``--watch`` the check repeats every ``--interval`` seconds and each
    newly available version is printed once. Stop with Ctrl-C.

    Example::

        extmgr outdated --json
        extmgr outdated --watch --interval 600
    """
    from extmgr.packages import PackageCoordinator
    from extmgr.updates import UpdateWatcher

    if interval is not None and interval <= 0:
        raise typer.BadParameter("Interval must be positive.", param_hint="--interval")

    session = open_session(ctx)
    watcher = UpdateWatcher(
        PackageCoordinator(session).list_installed_packages,
        session.runner,
        timeout=session.config.timeouts.npm_view,
        cwd=session.cwd,
    )

    async def _watch() -> None:
        every = interval if interval is not None else session.config.updates.interval_seconds
        watcher.start(session.scheduler, every, _show_updates)
        info(f"Checking for updates every {every:g}s. Press Ctrl-C to stop.")
        await _wait_forever()

    try:
        updates = run(watcher.poll())
        if not updates:
            info("All npm packages are up to date.")
        else:
            _show_updates(updates)
        if watch:
            run(_watch())
    except KeyboardInterrupt:
        info("Stopped watching for updates.")
    finally:
        session.close()
