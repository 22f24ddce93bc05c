"""Per-scope settings store with atomic writes.

Each scope has one ``settings.json`` shared with the host agent:

* global -- ``<agent dir>/settings.json``
* project -- ``<cwd>/.pi/settings.json``

Reads used for display are lenient (a broken file reads as empty), while
reads that precede a write are strict so a corrupt file is reported and left
untouched instead of being replaced by an empty document.

Writes go to a uniquely named temp file in the target directory and are
committed with :func:`os.replace`. Readers therefore see either the old or
the new document, never a torn one.
"""

from __future__ import annotations

import json
import logging
import os
import re
import secrets
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import ValidationError

from extmgr.config import get_agent_dir
from extmgr.exceptions import InvalidSettingsError
from extmgr.models import PackageEntry, PackageSettings, Scope, SettingsDocument, State
from extmgr.paths import normalize_relative_path
from extmgr.resolver import is_override_marker, make_marker, marker_path, resolve_state

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.json"

_DECORATION_RE = re.compile(r"\s+\((filtered|pinned)\)$", re.IGNORECASE)


def normalize_source(source: str) -> str:
    """Strip whitespace and a trailing ``(filtered)``/``(pinned)`` decoration.

    Example::

        >>> normalize_source("  npm:demo (Pinned) ")
        'npm:demo'
    """
    return _DECORATION_RE.sub("", source.strip()).strip()


def entry_source(entry: Any) -> Optional[str]:
    """Return the raw source string of a package entry.

    Returns:
        The source of a bare or detailed entry, or ``None`` for a raw value
        that is not a package entry.
    """
    if isinstance(entry, str):
        return entry
    if isinstance(entry, PackageSettings):
        return entry.source
    return None


def _has_source(entry: Any, wanted: str) -> bool:
    source = entry_source(entry)
    return source is not None and normalize_source(source) == wanted


def _dump_entry(entry: Any) -> Any:
    if isinstance(entry, PackageSettings):
        return entry.model_dump(mode="json", exclude_unset=True)
    return entry


class SettingsStore:
    """Reads and writes the settings document of each scope.

    Args:
        cwd: Project directory; project settings live in ``<cwd>/.pi/``.
        agent_dir: Host agent directory holding the global settings.
            Defaults to :func:`~extmgr.config.get_agent_dir`.
    """

    def __init__(self, cwd: Union[str, Path], agent_dir: Optional[Union[str, Path]] = None) -> None:
        self.cwd = Path(cwd)
        self.agent_dir = Path(agent_dir) if agent_dir is not None else get_agent_dir()

    def path_for(self, scope: Scope) -> Path:
        """Return the settings file path for *scope*."""
        if scope is Scope.PROJECT:
            return self.cwd / ".pi" / SETTINGS_FILENAME
        return self.agent_dir / SETTINGS_FILENAME

    # ------------------------------------------------------------------ #
    # Reading
    # ------------------------------------------------------------------ #

    def read(self, scope: Scope, strict: bool = False) -> SettingsDocument:
        """Load the settings document for *scope*.

        A missing or blank file is an empty document in both modes.

        Args:
            scope: Which settings file to read.
            strict: Raise on a corrupt file instead of returning an empty
                document.

        Raises:
            InvalidSettingsError: In strict mode, when the file is not valid
                JSON, is not a JSON object, or has a ``packages`` value that
                is not a list. Malformed individual entries are kept as raw
                values and skipped by lookups in both modes.
            OSError: In strict mode, for I/O errors other than a missing file.
        """
        path = self.path_for(scope)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return SettingsDocument()
        except OSError:
            if strict:
                raise
            logger.debug("Cannot read %s; treating as empty", path, exc_info=True)
            return SettingsDocument()

        if not raw.strip():
            return SettingsDocument()

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            return self._reject(path, f"invalid JSON ({exc})", strict)

        if not isinstance(data, dict):
            return self._reject(path, "expected a JSON object", strict)

        try:
            document = SettingsDocument.model_validate(data)
        except ValidationError as exc:
            return self._reject(path, f"unexpected shape ({exc.error_count()} errors)", strict)

        skipped = sum(1 for entry in document.packages if entry_source(entry) is None)
        if skipped:
            logger.warning("Skipping %d malformed package entries in %s", skipped, path)
        return document

    def _reject(self, path: Path, reason: str, strict: bool) -> SettingsDocument:
        if strict:
            raise InvalidSettingsError(path, reason)
        logger.warning("Ignoring settings in %s: %s", path, reason)
        return SettingsDocument()

    # ------------------------------------------------------------------ #
    # Writing
    # ------------------------------------------------------------------ #

    def write(self, scope: Scope, document: SettingsDocument) -> None:
        """Persist *document* as the settings of *scope*.

        The document is written to ``<name>.<pid>.<random>.tmp`` beside the
        target and renamed over it. If the temp-file route fails with an
        ``OSError`` the content is written to the target directly. The temp
        file never outlives this call. Interrupts and other non-I/O errors
        propagate with the original file untouched.
        """
        path = self.path_for(scope)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = document.model_dump(mode="json", exclude_unset=True, exclude={"packages"})
        if "packages" in document.model_fields_set:
            data = {"packages": [_dump_entry(entry) for entry in document.packages], **data}
        content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
        tmp_path = path.with_name(f"{path.name}.{os.getpid()}.{secrets.token_hex(6)}.tmp")

        try:
            try:
                with open(tmp_path, "w", encoding="utf-8") as fh:
                    fh.write(content)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_path, path)
            except OSError as exc:
                logger.warning("Atomic write to %s failed (%s); writing in place", path, exc)
                path.write_text(content, encoding="utf-8")
        finally:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        logger.debug("Wrote %s settings to %s", scope.value, path)

    # ------------------------------------------------------------------ #
    # Package entries
    # ------------------------------------------------------------------ #

    @staticmethod
    def find_package(document: SettingsDocument, source: str) -> Optional[PackageEntry]:
        """Return the first entry whose normalized source equals *source*'s."""
        wanted = normalize_source(source)
        for entry in document.packages:
            if _has_source(entry, wanted):
                return entry
        return None

    def get_package_extension_state(
        self, source: str, extension_path: str, scope: Scope
    ) -> State:
        """Return the effective state of one entrypoint (lenient read).

        A package with no entry, or with a bare-string entry, has every
        entrypoint enabled.
        """
        document = self.read(scope)
        entry = self.find_package(document, source)
        if entry is None or isinstance(entry, str):
            return State.ENABLED
        return resolve_state(entry.extensions, extension_path)

    def set_package_extension_state(
        self, source: str, extension_path: str, scope: Scope, target: State
    ) -> None:
        """Force one entrypoint to *target* by rewriting its override marker.

        Existing markers for the same normalized path are removed and a new
        marker is appended; every other token keeps its position and value.
        Entries that share the normalized source are merged into the first
        one. A package without an entry gets a new detailed entry.

        Raises:
            InvalidSettingsError: If the current file is corrupt. Nothing is
                written in that case.
        """
        document = self.read(scope, strict=True)
        wanted = normalize_source(source)
        path_key = normalize_relative_path(extension_path)
        marker = make_marker(path_key, target)

        packages = list(document.packages)
        matches = [
            index
            for index, entry in enumerate(packages)
            if _has_source(entry, wanted)
        ]

        if not matches:
            packages.append(PackageSettings(source=source, extensions=[marker]))
        else:
            tokens: list = []
            for index in matches:
                entry = packages[index]
                if isinstance(entry, PackageSettings) and entry.extensions is not None:
                    tokens.extend(entry.extensions)
            tokens = [
                token
                for token in tokens
                if not (is_override_marker(token) and marker_path(token) == path_key)
            ]
            tokens.append(marker)

            first = packages[matches[0]]
            if isinstance(first, str):
                merged = PackageSettings(source=first, extensions=tokens)
            else:
                fields = first.model_dump(exclude_unset=True)
                fields["extensions"] = tokens
                merged = PackageSettings.model_validate(fields)

            packages[matches[0]] = merged
            for index in reversed(matches[1:]):
                del packages[index]

        document.packages = packages
        self.write(scope, document)
        logger.info("Set %s:%s to %s in %s settings", source, path_key, target.value, scope.value)
