"""Extension commands -- list, inspect, and toggle package entrypoints.

``extmgr list`` shows the extension catalog: every entrypoint of every
installed package with its effective state. ``enable``/``disable`` write a
single override marker, ``state`` reads the effective state back, and
``configure`` stages several toggles of one package and applies them in one
pass.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import typer

from extmgr.commands import interactive, open_session, parse_scope, run
from extmgr.models import InstalledPackage, PackageExtensionEntry, Scope, State
from extmgr.output import error, format_response, get_output, info, success, warning

if TYPE_CHECKING:
    from extmgr.session import Session


async def _find_installed(
    session: Session, source: str, scope: Optional[Scope]
) -> Optional[InstalledPackage]:
    """Return the listed package matching *source* (by identity), preferring *scope*."""
    from extmgr.packages import PackageCoordinator
    from extmgr.sources import package_identity

    identity = package_identity(source)
    candidates = [
        pkg
        for pkg in await PackageCoordinator(session).list_installed_packages()
        if package_identity(pkg.source, pkg.name) == identity
    ]
    if scope is not None:
        candidates = [pkg for pkg in candidates if pkg.scope is scope]
    return candidates[0] if candidates else None


def list_command(
    ctx: typer.Context,
    scope: Optional[str] = typer.Option(
        None, "--scope", "-s", help="Only show one scope: global or project."
    ),
    disabled_only: bool = typer.Option(
        False, "--disabled", help="Only show disabled extensions."
    ),
) -> None:
    """List every package extension with its state.

    Example::

        extmgr list
        extmgr list --scope project --json
    """
    from extmgr.catalog import discover_package_extensions
    from extmgr.listing import packages_in_scope
    from extmgr.packages import PackageCoordinator

    wanted = parse_scope(scope)
    session = open_session(ctx)

    async def _catalog() -> list[PackageExtensionEntry]:
        packages = await PackageCoordinator(session).list_installed_packages()
        if wanted is not None:
            packages = packages_in_scope(packages, wanted)
        return await discover_package_extensions(packages, session.store, session.roots)

    try:
        entries = run(_catalog())
    finally:
        session.close()

    if disabled_only:
        entries = [entry for entry in entries if entry.state is State.DISABLED]

    if not entries:
        info("No package extensions found.")
        return

    get_output().print_table(
        ["State", "Extension", "Scope", "Source", "Summary"],
        [
            [e.state.value, e.display_name, e.package_scope.value, e.package_source, e.summary]
            for e in entries
        ],
        title="Package extensions",
    )


def _set_state(ctx: typer.Context, source: str, path: str, scope: Optional[str], enabled: bool) -> None:
    from extmgr.catalog import extension_id
    from extmgr.exceptions import ExtmgrError
    from extmgr.paths import normalize_relative_path

    target = State.ENABLED if enabled else State.DISABLED
    wanted = parse_scope(scope)
    rel = normalize_relative_path(path)
    session = open_session(ctx)

    async def _apply() -> tuple:
        pkg = await _find_installed(session, source, wanted)
        if pkg is None:
            warning(f"{source} is not listed by '{session.config.tool} list'; writing settings anyway.")
        pkg_source = pkg.source if pkg is not None else source
        pkg_scope = wanted or (pkg.scope if pkg is not None else Scope.GLOBAL)

        before = session.store.get_package_extension_state(pkg_source, rel, pkg_scope)
        try:
            session.store.set_package_extension_state(pkg_source, rel, pkg_scope, target)
        except (ExtmgrError, OSError) as exc:
            session.history.log_extension_toggle(
                pkg_source,
                extension_id(pkg_scope.value, pkg_source, rel),
                pkg_scope,
                before,
                target,
                success=False,
                error=str(exc),
            )
            raise
        session.history.log_extension_toggle(
            pkg_source, extension_id(pkg_scope.value, pkg_source, rel), pkg_scope, before, target, success=True
        )
        return pkg_source, pkg_scope

    try:
        pkg_source, pkg_scope = run(_apply())
    finally:
        session.close()

    success(f"{target.value.capitalize()} {pkg_source}:{rel} ({pkg_scope.value})")


def enable_command(
    ctx: typer.Context,
    source: str = typer.Argument(help="Package source, as shown by 'extmgr packages'."),
    path: str = typer.Argument(help="Entrypoint path relative to the package root."),
    scope: Optional[str] = typer.Option(
        None, "--scope", "-s", help="Settings scope: global or project (default: where installed)."
    ),
) -> None:
    """Enable one extension entrypoint of a package.

    Example::

        extmgr enable npm:demo extensions/main.ts
    """
    _set_state(ctx, source, path, scope, enabled=True)


def disable_command(
    ctx: typer.Context,
    source: str = typer.Argument(help="Package source, as shown by 'extmgr packages'."),
    path: str = typer.Argument(help="Entrypoint path relative to the package root."),
    scope: Optional[str] = typer.Option(
        None, "--scope", "-s", help="Settings scope: global or project (default: where installed)."
    ),
) -> None:
    """Disable one extension entrypoint of a package.

    Example::

        extmgr disable npm:demo extensions/main.ts --scope project
    """
    _set_state(ctx, source, path, scope, enabled=False)


def state_command(
    ctx: typer.Context,
    source: str = typer.Argument(help="Package source."),
    path: str = typer.Argument(help="Entrypoint path relative to the package root."),
    scope: Optional[str] = typer.Option(
        None, "--scope", "-s", help="Settings scope: global or project (default: where installed)."
    ),
) -> None:
    """Show the effective state of one extension entrypoint."""
    from extmgr.paths import normalize_relative_path

    wanted = parse_scope(scope)
    rel = normalize_relative_path(path)
    session = open_session(ctx)
    try:
        pkg = run(_find_installed(session, source, wanted))
        pkg_source = pkg.source if pkg is not None else source
        pkg_scope = wanted or (pkg.scope if pkg is not None else Scope.GLOBAL)
        state = session.store.get_package_extension_state(pkg_source, rel, pkg_scope)
    finally:
        session.close()

    format_response(
        {"source": pkg_source, "path": rel, "scope": pkg_scope.value, "state": state.value}
    )


def configure_command(
    ctx: typer.Context,
    source: str = typer.Argument(help="Package source."),
    scope: Optional[str] = typer.Option(
        None, "--scope", "-s", help="Scope of the installed package: global or project."
    ),
    enable: Optional[list[str]] = typer.Option(
        None, "--enable", "-e", help="Entrypoint path to enable (repeatable)."
    ),
    disable: Optional[list[str]] = typer.Option(
        None, "--disable", "-d", help="Entrypoint path to disable (repeatable)."
    ),
) -> None:
    """Stage several toggles for one package and apply them together.

    Without ``--enable``/``--disable`` the package's entrypoints are listed,
    and in an interactive terminal you are asked which ones to toggle.

    Example::

        extmgr configure npm:demo --disable extensions/a.ts --enable extensions/b.ts
    """
    from extmgr.catalog import (
        apply_package_extension_changes,
        build_package_config_rows,
        discover_package_extensions,
        pending_change_count,
    )
    from extmgr.exit_codes import EXIT_INVALID_USAGE, EXIT_PARTIAL_FAILURE
    from extmgr.paths import normalize_relative_path

    wanted = parse_scope(scope)
    session = open_session(ctx)
    try:
        pkg = run(_find_installed(session, source, wanted))
        if pkg is None:
            error(f"{source} is not installed.")
            raise typer.Exit(code=EXIT_INVALID_USAGE)

        entries = run(discover_package_extensions([pkg], session.store, session.roots))
        rows = build_package_config_rows(entries)
        if not rows:
            info(f"{pkg.name} has no extension entrypoints.")
            return

        by_path = {row.extension_path: row for row in rows}
        staged: dict[str, State] = {}
        requested = [(p, State.ENABLED) for p in enable or []] + [
            (p, State.DISABLED) for p in disable or []
        ]
        for raw_path, target in requested:
            row = by_path.get(normalize_relative_path(raw_path))
            if row is None:
                error(f"{raw_path} is not an entrypoint of {pkg.name}.")
                raise typer.Exit(code=EXIT_INVALID_USAGE)
            staged[row.id] = target

        if not requested:
            get_output().print_table(
                ["#", "State", "Path", "Summary"],
                [
                    [str(i), row.original_state.value, row.extension_path, row.summary]
                    for i, row in enumerate(rows, 1)
                ],
                title=f"{pkg.name} ({pkg.scope.value})",
            )
            if not interactive(ctx):
                return
            answer = typer.prompt("Numbers to toggle (comma separated, empty to quit)", default="", err=True)
            for part in answer.split(","):
                part = part.strip()
                if not part:
                    continue
                if not part.isdigit() or not 1 <= int(part) <= len(rows):
                    error(f"Invalid selection: {part}")
                    raise typer.Exit(code=EXIT_INVALID_USAGE)
                row = rows[int(part) - 1]
                current = staged.get(row.id, row.original_state)
                staged[row.id] = State.DISABLED if current is State.ENABLED else State.ENABLED

        pending = pending_change_count(rows, staged)
        if pending == 0:
            info("No changes to apply.")
            return

        force = ctx.obj.get("force", False) if ctx.obj else False
        if not requested and not force and not typer.confirm(f"Apply {pending} change(s)?", err=True):
            info("Cancelled.")
            return

        result = apply_package_extension_changes(rows, staged, pkg, session.store, session.history)
    finally:
        session.close()

    for message in result.errors:
        error(message)
    if result.changed:
        success(f"Applied {result.changed} change(s) to {pkg.name} ({pkg.scope.value}).")
    if result.errors:
        raise typer.Exit(code=EXIT_PARTIAL_FAILURE)
