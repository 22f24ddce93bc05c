"""Shared plumbing for the install, update, and remove coordinators."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional, Sequence, Union

from extmgr.listing import parse_installed_packages
from extmgr.models import InstalledPackage, Scope
from extmgr.retry import wait_with_policy
from extmgr.runner import CommandResult
from extmgr.session import Session
from extmgr.sources import package_identity

logger = logging.getLogger(__name__)


def tool_args(subcommand: str, scope: Optional[Scope] = None, source: Optional[str] = None) -> list[str]:
    """Build ``<subcommand> [-l] [source]``; ``-l`` selects the project scope."""
    args = [subcommand]
    if scope is Scope.PROJECT:
        args.append("-l")
    if source is not None:
        args.append(source)
    return args


class PackageCoordinator:
    """Base class holding the :class:`~extmgr.session.Session`.

    Subclasses run exactly one mutating tool command per target and never
    retry it. Only the follow-up visibility check is retried, using the
    session's polling policy.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    @property
    def tool(self) -> str:
        return self.session.config.tool

    async def run_tool(self, args: Sequence[str], timeout: float) -> CommandResult:
        logger.debug("Running %s %s", self.tool, " ".join(args))
        result = await self.session.runner.run(self.tool, list(args), timeout=timeout, cwd=self.session.cwd)
        if result.killed:
            logger.warning("%s %s timed out after %gs", self.tool, args[0], timeout)
        return result

    async def list_installed_packages(self) -> list[InstalledPackage]:
        """Return every installed package in both scopes, or ``[]`` on failure."""
        result = await self.run_tool(["list"], timeout=self.session.config.timeouts.list)
        if not result.ok:
            logger.debug("%s list failed: %s", self.tool, result.detail())
            return []
        return parse_installed_packages(result.stdout)

    async def is_source_installed(self, source: str, scope: Optional[Scope] = None) -> bool:
        """True when a package with the identity of *source* is listed in *scope*."""
        identity = package_identity(source)
        for pkg in await self.list_installed_packages():
            if scope is not None and pkg.scope is not scope:
                continue
            if package_identity(pkg.source, pkg.name) == identity:
                return True
        return False

    async def wait_until(self, condition: Callable[[], Union[bool, Awaitable[bool]]]) -> bool:
        """Poll *condition* with the configured policy."""
        return await wait_with_policy(condition, self.session.config.polling)
