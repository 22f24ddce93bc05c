"""Update availability checks for npm packages.

Compares the version the listing reports for each ``npm:`` package with the
registry's latest version (``npm view <name> version --json``). Packages
without a known installed version are not checked. A failed lookup means
"no update known", never an error.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence, Union

from pydantic import BaseModel

from extmgr.models import InstalledPackage, Scope
from extmgr.runner import CommandRunner, resolve_npm_command
from extmgr.scheduler import Scheduler
from extmgr.sources import parse_npm_source

logger = logging.getLogger(__name__)


class UpdateInfo(BaseModel):
    """An npm package whose registry version differs from the installed one."""

    source: str
    name: str
    scope: Scope
    installed: str
    latest: str


async def latest_npm_version(
    name: str,
    runner: CommandRunner,
    timeout: float = 10.0,
    cwd: Optional[Union[str, Path]] = None,
) -> Optional[str]:
    """Return the registry's latest version of *name*, or ``None`` if unknown."""
    command, args = resolve_npm_command(["view", name, "version", "--json"])
    result = await runner.run(command, args, timeout=timeout, cwd=cwd)
    if not result.ok:
        logger.debug("npm view %s failed: %s", name, result.detail())
        return None
    try:
        value = json.loads(result.stdout)
    except ValueError:
        logger.debug("npm view %s returned non-JSON output", name)
        return None
    if isinstance(value, list):
        value = value[-1] if value else None
    return value if isinstance(value, str) and value else None


async def check_for_updates(
    packages: Sequence[InstalledPackage],
    runner: CommandRunner,
    timeout: float = 10.0,
    cwd: Optional[Union[str, Path]] = None,
) -> list[UpdateInfo]:
    """Return the npm packages in *packages* that have a different latest version."""
    updates: list[UpdateInfo] = []
    for pkg in packages:
        npm = parse_npm_source(pkg.source)
        if npm is None or not pkg.version:
            continue
        latest = await latest_npm_version(npm.name, runner, timeout=timeout, cwd=cwd)
        if latest is not None and latest != pkg.version:
            updates.append(
                UpdateInfo(
                    source=pkg.source,
                    name=pkg.name,
                    scope=pkg.scope,
                    installed=pkg.version,
                    latest=latest,
                )
            )
    return updates


class UpdateWatcher:
    """Repeats update checks and reports each available version once.

    Args:
        list_packages: Coroutine function returning the installed packages.
        runner: Runner used for ``npm view``.
        timeout: Per-lookup timeout in seconds.
        cwd: Working directory for the lookups.

    Example::

        watcher = UpdateWatcher(coordinator.list_installed_packages, session.runner)
        first = await watcher.poll()
        watcher.start(session.scheduler, 3600, show_updates)
    """

    def __init__(
        self,
        list_packages: Callable[[], Awaitable[Sequence[InstalledPackage]]],
        runner: CommandRunner,
        timeout: float = 10.0,
        cwd: Optional[Union[str, Path]] = None,
    ) -> None:
        self._list_packages = list_packages
        self._runner = runner
        self._timeout = timeout
        self._cwd = cwd
        self._announced: set[tuple[str, str, str]] = set()

    async def poll(self) -> list[UpdateInfo]:
        """Check once and return the updates not reported by an earlier poll."""
        packages = await self._list_packages()
        updates = await check_for_updates(packages, self._runner, timeout=self._timeout, cwd=self._cwd)
        fresh = [u for u in updates if (u.scope.value, u.source, u.latest) not in self._announced]
        self._announced.update((u.scope.value, u.source, u.latest) for u in fresh)
        return fresh

    def start(
        self,
        scheduler: Scheduler,
        interval: float,
        on_updates: Callable[[list[UpdateInfo]], None],
    ) -> None:
        """Poll every *interval* seconds on *scheduler*, passing fresh updates to *on_updates*."""

        async def _tick() -> None:
            fresh = await self.poll()
            logger.debug("Update check found %d new update(s)", len(fresh))
            if fresh:
                on_updates(fresh)

        scheduler.start(interval, _tick)
