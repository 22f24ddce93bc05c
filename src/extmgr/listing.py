"""Parser for the package tool's ``list`` output.

The tool prints one block per scope::

    Global:
      npm:demo@1.0.0
        /home/me/.pi/agent/npm/node_modules/demo
    Project:
      ./vendor/local-ext

A header is any unindented line ending in ``:``. Headers mentioning
"project" start the project block and every other header starts the global
block (``User packages:`` included). An entry is an indented line; a line
indented deeper than the entry before it is that entry's resolved path.
"""

from __future__ import annotations

import logging
from typing import Optional

from extmgr.models import InstalledPackage, Scope
from extmgr.settings import normalize_source
from extmgr.sources import SourceKind, get_package_source_kind, package_display_name, parse_npm_source

logger = logging.getLogger(__name__)

EMPTY_MARKER = "no packages installed"


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())


def _scope_for_header(header: str) -> Scope:
    return Scope.PROJECT if "project" in header.lower() else Scope.GLOBAL


def _make_package(raw: str, scope: Scope, resolved_path: Optional[str]) -> InstalledPackage:
    source = normalize_source(raw)
    version: Optional[str] = None
    if get_package_source_kind(source) is SourceKind.NPM:
        npm = parse_npm_source(source)
        version = npm.version if npm is not None else None
    return InstalledPackage(
        source=source,
        name=package_display_name(source),
        scope=scope,
        version=version,
        resolved_path=resolved_path,
    )


def parse_installed_packages(output: str) -> list[InstalledPackage]:
    """Parse ``list`` output covering every scope.

    Returns:
        The listed packages in output order. ``No packages installed`` and
        blank output yield an empty list.
    """
    if EMPTY_MARKER in output.lower():
        return []

    packages: list[InstalledPackage] = []
    scope = Scope.GLOBAL
    pending: Optional[tuple[str, int]] = None
    pending_path: Optional[str] = None

    def _flush() -> None:
        nonlocal pending, pending_path
        if pending is not None:
            packages.append(_make_package(pending[0], scope, pending_path))
        pending = None
        pending_path = None

    for line in output.splitlines():
        if not line.strip():
            continue
        indent = _indent(line)
        text = line.strip()

        if indent == 0 and text.endswith(":"):
            _flush()
            scope = _scope_for_header(text[:-1])
            continue

        if indent == 0:
            logger.debug("Ignoring unindented list line: %r", text)
            continue

        if pending is not None and pending_path is None and indent > pending[1]:
            pending_path = text
            continue

        _flush()
        pending = (text, indent)

    _flush()
    return packages


def packages_in_scope(packages: list[InstalledPackage], scope: Scope) -> list[InstalledPackage]:
    """Return only the packages installed in *scope*."""
    return [pkg for pkg in packages if pkg.scope is scope]
