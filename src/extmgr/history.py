"""Append-only change history.

Every mutation attempt (extension toggle, install, update, remove) is
recorded as one JSON line in ``<data dir>/history.jsonl``. The file is
trimmed to the newest ``max_entries`` records whenever it grows past the
limit.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from extmgr.config import atomic_write
from extmgr.models import ChangeAction, ChangeEntry, Scope, State

logger = logging.getLogger(__name__)

HISTORY_FILENAME = "history.jsonl"


class ChangeHistory:
    """Reads and appends :class:`~extmgr.models.ChangeEntry` records.

    Args:
        path: The JSON-lines history file.
        max_entries: Number of newest records kept on disk.
        enabled: When ``False``, :meth:`record` is a no-op.
    """

    def __init__(self, path: Union[str, Path], max_entries: int = 500, enabled: bool = True) -> None:
        self.path = Path(path)
        self.max_entries = max_entries
        self.enabled = enabled

    def record(self, entry: ChangeEntry) -> None:
        """Append *entry* and trim the file if it exceeds the limit."""
        if not self.enabled:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write(entry.model_dump_json() + "\n")
        self._trim()

    def log_extension_toggle(
        self,
        source: str,
        extension_id: str,
        scope: Scope,
        from_state: State,
        to_state: State,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        self.record(
            ChangeEntry(
                action=ChangeAction.EXTENSION_TOGGLE,
                source=source,
                scope=scope,
                extension_id=extension_id,
                from_state=from_state,
                to_state=to_state,
                success=success,
                error=error,
            )
        )

    def log_package(
        self,
        action: ChangeAction,
        source: str,
        success: bool,
        package_name: Optional[str] = None,
        scope: Optional[Scope] = None,
        error: Optional[str] = None,
        version: Optional[str] = None,
    ) -> None:
        """Record a package install, update, or removal."""
        self.record(
            ChangeEntry(
                action=action,
                source=source,
                package_name=package_name,
                scope=scope,
                success=success,
                error=error,
                version=version,
            )
        )

    def entries(self) -> list[ChangeEntry]:
        """Return all readable records, oldest first. Malformed lines are skipped."""
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []

        entries: list[ChangeEntry] = []
        for line in lines:
            if not line.strip():
                continue
            try:
                entries.append(ChangeEntry.model_validate_json(line))
            except ValidationError:
                logger.debug("Skipping malformed history line in %s", self.path)
        return entries

    def query(
        self,
        action: Optional[ChangeAction] = None,
        success: Optional[bool] = None,
        limit: Optional[int] = None,
    ) -> list[ChangeEntry]:
        """Return matching records, newest first.

        Args:
            action: Only records of this kind.
            success: Only successful (``True``) or failed (``False``) records.
            limit: Maximum number of records returned.
        """
        selected = [
            entry
            for entry in reversed(self.entries())
            if (action is None or entry.action is action)
            and (success is None or entry.success is success)
        ]
        if limit is not None:
            selected = selected[:limit]
        return selected

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def _trim(self) -> None:
        lines = [line for line in self.path.read_text(encoding="utf-8").splitlines() if line.strip()]
        if len(lines) <= self.max_entries:
            return
        kept = lines[-self.max_entries :]
        atomic_write(self.path, "\n".join(kept) + "\n")
        logger.debug("Trimmed history to %d entries", len(kept))
