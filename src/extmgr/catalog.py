"""Extension catalog: every entrypoint of every installed package, with its state.

:func:`discover_package_extensions` is the read path of the whole system.
For each installed package it locates the package root, discovers the
entrypoints, reads a one-line summary from each file, and evaluates the
package's filter rules. The catalog is rebuilt from scratch every time and
holds no state of its own.

The *configure* workflow works on :class:`PackageConfigRow` values built from
the catalog: toggles are staged in a plain ``{row id: state}`` mapping and
written in one pass by :func:`apply_package_extension_changes`.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Sequence

from extmgr.discovery import discover_entrypoints
from extmgr.exceptions import ExtmgrError
from extmgr.history import ChangeHistory
from extmgr.models import InstalledPackage, PackageExtensionEntry, State
from extmgr.paths import normalize_relative_path
from extmgr.roots import PackageRootResolver
from extmgr.settings import SettingsStore

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY = "package extension"
MAX_SUMMARY_LENGTH = 80
_SUMMARY_READ_BYTES = 4096


def extension_id(scope: str, source: str, extension_path: str) -> str:
    """Stable identifier of a catalog entry."""
    return f"pkg-ext:{scope}:{source}:{extension_path}"


def _truncate(text: str) -> str:
    if len(text) <= MAX_SUMMARY_LENGTH:
        return text
    return text[: MAX_SUMMARY_LENGTH - 3].rstrip() + "..."


def _comment_text(line: str) -> Optional[str]:
    """Return the text of a comment line, or ``None`` if it is code."""
    if line.startswith("//"):
        return line.lstrip("/").strip()
    if line.startswith("/*"):
        return line.lstrip("/*").replace("*/", "").strip()
    if line.startswith("*"):
        return line.lstrip("*").replace("*/", "").lstrip("/").strip()
    return None


def read_summary(path: os.PathLike | str) -> str:
    """Return the first meaningful comment line of a script file.

    Leading blank lines, a shebang, and empty comment lines are skipped.
    The search stops at the first line of code. Files that cannot be read,
    or have no leading comment, get the generic summary.

    Example::

        // demo extension
        export default function () {}

    yields ``"demo extension"``.
    """
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as fh:
            head = fh.read(_SUMMARY_READ_BYTES)
    except OSError:
        return DEFAULT_SUMMARY

    for raw in head.splitlines():
        line = raw.strip()
        if not line or line.startswith("#!"):
            continue
        text = _comment_text(line)
        if text is None:
            break
        if text and not text.startswith("@"):
            return _truncate(text)
    return DEFAULT_SUMMARY


def _describe_entrypoints(
    pkg: InstalledPackage, root: Path, store: SettingsStore
) -> list[PackageExtensionEntry]:
    entries: list[PackageExtensionEntry] = []
    for raw_path in discover_entrypoints(root):
        rel = normalize_relative_path(raw_path)
        absolute = Path(os.path.normpath(root / rel))
        summary = read_summary(absolute) if absolute.is_file() else DEFAULT_SUMMARY
        state = store.get_package_extension_state(pkg.source, rel, pkg.scope)
        entries.append(
            PackageExtensionEntry(
                id=extension_id(pkg.scope.value, pkg.source, rel),
                package_source=pkg.source,
                package_name=pkg.name,
                package_scope=pkg.scope,
                extension_path=rel,
                absolute_path=str(absolute),
                display_name=f"{pkg.name}/{rel}",
                summary=summary,
                state=state,
            )
        )
    return entries


async def discover_package_extensions(
    packages: Sequence[InstalledPackage],
    store: SettingsStore,
    roots: PackageRootResolver,
) -> list[PackageExtensionEntry]:
    """Build the extension catalog for *packages*.

    Packages whose root cannot be located are skipped. Duplicate
    ``(scope, source, path)`` records collapse to one. The result is sorted
    by display name (``<package name>/<path>``).
    """
    catalog: dict[tuple[str, str, str], PackageExtensionEntry] = {}

    for pkg in packages:
        root = await roots.resolve(pkg)
        if root is None:
            logger.debug("Cannot locate %s (%s); skipping", pkg.source, pkg.scope.value)
            continue
        for entry in await asyncio.to_thread(_describe_entrypoints, pkg, root, store):
            key = (entry.package_scope.value, entry.package_source, entry.extension_path)
            catalog.setdefault(key, entry)

    return sorted(catalog.values(), key=lambda e: (e.display_name.casefold(), e.display_name))


# ------------------------------------------------------------------ #
# Configure workflow
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class PackageConfigRow:
    """One toggleable entrypoint of a single package."""

    id: str
    extension_path: str
    summary: str
    original_state: State
    available: bool


@dataclass
class ApplyResult:
    """Outcome of :func:`apply_package_extension_changes`."""

    changed: int = 0
    errors: list[str] = field(default_factory=list)


def build_package_config_rows(entries: Sequence[PackageExtensionEntry]) -> list[PackageConfigRow]:
    """Turn catalog entries of one package into configure rows.

    Entries are deduplicated by extension path (first wins) and sorted by
    path. ``available`` is False when the entrypoint file is missing.
    """
    seen: dict[str, PackageExtensionEntry] = {}
    for entry in entries:
        seen.setdefault(entry.extension_path, entry)

    rows = [
        PackageConfigRow(
            id=entry.id,
            extension_path=entry.extension_path,
            summary=entry.summary,
            original_state=entry.state,
            available=Path(entry.absolute_path).exists(),
        )
        for entry in seen.values()
    ]
    rows.sort(key=lambda row: row.extension_path)
    return rows


def pending_change_count(rows: Sequence[PackageConfigRow], staged: Mapping[str, State]) -> int:
    """Number of rows whose staged state differs from the saved one."""
    return sum(
        1 for row in rows if row.id in staged and staged[row.id] is not row.original_state
    )


def apply_package_extension_changes(
    rows: Sequence[PackageConfigRow],
    staged: Mapping[str, State],
    pkg: InstalledPackage,
    store: SettingsStore,
    history: Optional[ChangeHistory] = None,
) -> ApplyResult:
    """Write every staged toggle of *pkg* to its scope's settings.

    Rows whose staged state equals the saved state are skipped. A missing
    entrypoint or a settings failure is reported for that row only and the
    remaining rows are still applied. Each attempt is recorded in *history*.
    """
    result = ApplyResult()

    for row in sorted(rows, key=lambda r: r.extension_path):
        target = staged.get(row.id, row.original_state)
        if target is row.original_state:
            continue

        error: Optional[str] = None
        if not row.available:
            error = "extension entrypoint is missing on disk"
        else:
            try:
                store.set_package_extension_state(pkg.source, row.extension_path, pkg.scope, target)
            except (ExtmgrError, OSError) as exc:
                error = str(exc)

        if error is None:
            result.changed += 1
        else:
            result.errors.append(f"{row.extension_path}: {error}")
            logger.info("Could not set %s to %s: %s", row.extension_path, target.value, error)

        if history is not None:
            history.log_extension_toggle(
                source=pkg.source,
                extension_id=row.id,
                scope=pkg.scope,
                from_state=row.original_state,
                to_state=target,
                success=error is None,
                error=error,
            )

    return result
