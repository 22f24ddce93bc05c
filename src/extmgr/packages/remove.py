"""Remove a package from one or both scopes.

Packages are matched by identity (see
:func:`~extmgr.sources.package_identity`), so ``demo``, ``npm:demo`` and
``npm:demo@1.2.0`` all name the same package. When the package is installed
in both scopes the caller, or the user, picks which copies go.

A removal never raises for a failed target. Failures are collected in the
returned :class:`RemovalOutcome` next to the targets that did succeed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from extmgr.exceptions import InvalidUsageError, VisibilityTimeoutError
from extmgr.models import ChangeAction, InstalledPackage, Scope
from extmgr.packages.base import PackageCoordinator, tool_args
from extmgr.sources import package_identity

logger = logging.getLogger(__name__)

SCOPE_CHOICES = ("both", "global", "project", "cancel")
SCOPE_OPTIONS = [
    "Both global + project",
    "Global only",
    "Project only",
    "Cancel",
]


def scope_choice_from_label(label: Optional[str]) -> str:
    """Map a prompter answer to ``both``, ``global``, ``project`` or ``cancel``."""
    if not label or label == "Cancel":
        return "cancel"
    if "Both" in label:
        return "both"
    if "Global" in label:
        return "global"
    if "Project" in label:
        return "project"
    return "cancel"


@dataclass(frozen=True)
class RemovalTarget:
    scope: Scope
    source: str
    name: str


@dataclass
class RemovalOutcome:
    """Result of :meth:`PackageRemover.remove_package`.

    Attributes:
        source: The source the user asked to remove.
        targets: Every target a removal was attempted for.
        changed: Number of targets removed successfully.
        errors: One message per failed target.
        remaining_scopes: Scopes that still list the package afterwards.
        warning: Set when removed targets were still listed after polling.
        cancelled: True when nothing was attempted because the user backed out.
    """

    source: str
    targets: list[RemovalTarget] = field(default_factory=list)
    changed: int = 0
    errors: list[str] = field(default_factory=list)
    remaining_scopes: list[Scope] = field(default_factory=list)
    warning: Optional[VisibilityTimeoutError] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.cancelled and not self.errors


def build_removal_targets(
    matching: list[InstalledPackage], source: str, has_ui: bool, scope_choice: str
) -> list[RemovalTarget]:
    """Decide which installed copies to remove.

    Nothing listed means a single global attempt with *source* as given.
    With copies in both scopes *scope_choice* selects them. Otherwise every
    match is removed when a user is present, and only the first one when not.
    """
    if not matching:
        return [RemovalTarget(scope=Scope.GLOBAL, source=source, name=source)]

    by_scope: dict[Scope, InstalledPackage] = {}
    for pkg in matching:
        by_scope[pkg.scope] = pkg

    def _target(scope: Scope) -> list[RemovalTarget]:
        pkg = by_scope.get(scope)
        return [RemovalTarget(scope=scope, source=pkg.source, name=pkg.name)] if pkg else []

    if Scope.GLOBAL in by_scope and Scope.PROJECT in by_scope:
        if scope_choice == "both":
            return _target(Scope.GLOBAL) + _target(Scope.PROJECT)
        if scope_choice == "global":
            return _target(Scope.GLOBAL)
        if scope_choice == "project":
            return _target(Scope.PROJECT)
        return []

    targets = [RemovalTarget(scope=pkg.scope, source=pkg.source, name=pkg.name) for pkg in matching]
    return targets if has_ui else targets[:1]


class PackageRemover(PackageCoordinator):
    """Runs ``<tool> remove [-l] <source>`` for every selected scope."""

    def _select_scope(self, scope_choice: Optional[str]) -> str:
        if scope_choice is not None:
            return scope_choice
        prompter = self.session.prompter
        if prompter is None:
            return "global"
        return scope_choice_from_label(prompter.select("Remove scope", SCOPE_OPTIONS))

    async def remove_package(self, source: str, scope_choice: Optional[str] = None) -> RemovalOutcome:
        """Remove *source* and report what happened.

        Args:
            source: Package source as typed or as listed.
            scope_choice: ``both``, ``global``, ``project`` or ``cancel``;
                consulted only when the package is installed in both scopes.

        Raises:
            InvalidUsageError: If *scope_choice* is not a known choice.
        """
        if scope_choice is not None and scope_choice not in SCOPE_CHOICES:
            raise InvalidUsageError(
                f"Unknown scope choice '{scope_choice}'. Use one of: {', '.join(SCOPE_CHOICES)}."
            )

        outcome = RemovalOutcome(source=source)
        installed = await self.list_installed_packages()
        direct = next((pkg for pkg in installed if pkg.source == source), None)
        identity = package_identity(source, direct.name if direct else None)
        matching = [pkg for pkg in installed if package_identity(pkg.source, pkg.name) == identity]

        scopes = {pkg.scope for pkg in matching}
        choice = self._select_scope(scope_choice) if len(scopes) > 1 else "both"
        if choice == "cancel":
            outcome.cancelled = True
            return outcome

        targets = build_removal_targets(matching, source, self.session.has_ui, choice)
        if not targets:
            logger.info("Nothing to remove for %s", source)
            return outcome

        summary = "\n".join(f"{t.scope.value}: {t.source}" for t in targets)
        prompter = self.session.prompter
        if prompter is not None and not prompter.confirm("Remove Package", f"Remove:\n{summary}?"):
            outcome.cancelled = True
            return outcome

        outcome.targets = targets
        removed: list[RemovalTarget] = []
        for target in targets:
            error = await self._remove_target(target)
            if error is None:
                removed.append(target)
            else:
                outcome.errors.append(error)
        outcome.changed = len(removed)

        remaining = [
            pkg
            for pkg in await self.list_installed_packages()
            if package_identity(pkg.source, pkg.name) == identity
        ]
        outcome.remaining_scopes = sorted({pkg.scope for pkg in remaining}, key=lambda s: s.value)

        if removed:
            gone = await self.wait_until(lambda: self._all_removed(removed))
            if not gone:
                outcome.warning = VisibilityTimeoutError(
                    "Removed package may still be active. Restart manually if needed.",
                    attempts=self.session.config.polling.max_attempts,
                )
                logger.info("%s", outcome.warning)

        return outcome

    async def _remove_target(self, target: RemovalTarget) -> Optional[str]:
        args = tool_args("remove", target.scope, target.source)
        result = await self.run_tool(args, timeout=self.session.config.timeouts.remove)
        history = self.session.history

        if not result.ok:
            error = f"Remove failed ({target.scope.value}): {result.detail()}"
            history.log_package(
                ChangeAction.PACKAGE_REMOVE,
                target.source,
                success=False,
                package_name=target.name,
                scope=target.scope,
                error=error,
            )
            logger.debug("%s", error)
            return error

        history.log_package(
            ChangeAction.PACKAGE_REMOVE, target.source, success=True, package_name=target.name, scope=target.scope
        )
        logger.info("Removed %s (%s)", target.source, target.scope.value)
        return None

    async def _all_removed(self, targets: list[RemovalTarget]) -> bool:
        for target in targets:
            if await self.is_source_installed(target.source, target.scope):
                return False
        return True
