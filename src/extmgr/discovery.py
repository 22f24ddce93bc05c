"""Entrypoint discovery inside an installed package.

A package lists its extension entrypoints in ``package.json`` under
``pi.extensions``. Each token is resolved against the package's recursive
listing of entrypoint files:

* ``!token`` removes its matches from the selection instead of adding them.
* a token with glob metacharacters selects every matching file.
* a token naming a directory selects every file below it.
* otherwise a token naming an entrypoint file selects that path directly.
* tokens that escape the package root are skipped.

Without a usable manifest, ``index.ts`` and then ``index.js`` are tried.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from extmgr.paths import (
    has_glob_magic,
    is_safe_relative_path,
    matches_filter_pattern,
    normalize_relative_path,
)

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "package.json"
ENTRYPOINT_SUFFIXES = (".ts", ".js")
FALLBACK_ENTRYPOINTS = ("index.ts", "index.js")


def is_entrypoint_path(path: str) -> bool:
    """Return True if *path* has an extension-source suffix (case-insensitive)."""
    return path.lower().endswith(ENTRYPOINT_SUFFIXES)


def collect_entrypoint_files(root: Union[str, Path]) -> list[str]:
    """List every entrypoint file below *root* as normalized relative paths.

    Directories that cannot be read are skipped.
    """
    root = Path(root)
    collected: list[str] = []

    def _on_error(exc: OSError) -> None:
        logger.debug("Skipping unreadable directory: %s", exc)

    for dirpath, _dirnames, filenames in os.walk(root, onerror=_on_error):
        for filename in filenames:
            absolute = os.path.join(dirpath, filename)
            if not os.path.isfile(absolute):
                continue
            relative = normalize_relative_path(os.path.relpath(absolute, root))
            if is_entrypoint_path(relative):
                collected.append(relative)
    return collected


def _apply(selected: set[str], files: Iterable[str], exclude: bool) -> None:
    for file in files:
        if exclude:
            selected.discard(file)
        else:
            selected.add(file)


def resolve_manifest_entries(root: Union[str, Path], tokens: Sequence[str]) -> list[str]:
    """Resolve manifest *tokens* to a sorted list of entrypoint paths.

    Args:
        root: Package root directory.
        tokens: The string items of ``pi.extensions``, in order.

    Returns:
        The selected relative paths, sorted lexicographically.
    """
    all_files = collect_entrypoint_files(root)
    selected: set[str] = set()

    for raw in tokens:
        token = raw.strip()
        if not token:
            continue

        exclude = token.startswith("!")
        pattern = normalize_relative_path(token[1:] if exclude else token).rstrip("/")
        if not is_safe_relative_path(pattern):
            logger.debug("Skipping unsafe manifest token %r in %s", raw, root)
            continue

        if has_glob_magic(pattern):
            _apply(selected, (f for f in all_files if matches_filter_pattern(f, pattern)), exclude)
            continue

        prefix = f"{pattern}/"
        under_directory = [f for f in all_files if f.startswith(prefix)]
        if under_directory:
            _apply(selected, under_directory, exclude)
            continue

        if is_entrypoint_path(pattern):
            _apply(selected, [pattern], exclude)

    return sorted(selected)


def resolve_manifest_entrypoints(root: Union[str, Path]) -> Optional[list[str]]:
    """Resolve the entrypoints declared in the package manifest.

    Returns:
        The resolved paths, or ``None`` when the manifest is missing,
        unparsable, or has no list-valued ``pi.extensions``. A declared but
        empty selection is ``[]``.
    """
    manifest = Path(root) / MANIFEST_FILENAME
    try:
        data = json.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None

    pi_section = data.get("pi") if isinstance(data, dict) else None
    extensions = pi_section.get("extensions") if isinstance(pi_section, dict) else None
    if not isinstance(extensions, list):
        return None

    tokens = [item for item in extensions if isinstance(item, str)]
    return resolve_manifest_entries(root, tokens)


def discover_entrypoints(root: Union[str, Path]) -> list[str]:
    """Return the entrypoints of the package at *root*.

    The manifest wins when present; otherwise the first existing fallback
    file is used. The fallback never searches subdirectories.
    """
    from_manifest = resolve_manifest_entrypoints(root)
    if from_manifest is not None:
        return from_manifest

    for candidate in FALLBACK_ENTRYPOINTS:
        if (Path(root) / candidate).is_file():
            return [candidate]
    return []
