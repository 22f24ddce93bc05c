"""Canonical Pydantic models shared across all extmgr modules.

This is the single source of truth for data shapes in the project. The models
fall into three groups:

**Settings models** -- the per-scope ``settings.json`` document owned by the
host agent:
    :class:`Scope`, :class:`State`, :class:`PackageSettings`,
    :class:`SettingsDocument`.

**Catalog models** -- snapshots produced by the package tool's listing and the
catalog builder:
    :class:`InstalledPackage`, :class:`PackageExtensionEntry`,
    :class:`ChangeAction`, :class:`ChangeEntry`.

**Configuration models** -- extmgr's own configuration, serialised as JSON in
the user's config directory:
    :class:`Backoff`, :class:`TimeoutsConfig`, :class:`PollingConfig`,
    :class:`CacheConfig`, :class:`HistoryConfig`, :class:`UpdatesConfig`,
    :class:`ExtmgrConfig`.

The settings models use ``extra="allow"`` because ``settings.json`` is shared
with the host agent: unknown keys must survive a read-modify-write cycle.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


# --- Settings ---


class Scope(str, enum.Enum):
    """Configuration partition a package (and its rules) belongs to."""

    GLOBAL = "global"
    PROJECT = "project"


class State(str, enum.Enum):
    """Verdict for a single extension entrypoint."""

    ENABLED = "enabled"
    DISABLED = "disabled"


class PackageSettings(BaseModel):
    """Detailed package entry inside a settings document.

    ``extensions`` is tri-state: absent (``None``) means every entrypoint is
    enabled, an empty list means none are, and a non-empty list is resolved
    token by token by :func:`~extmgr.resolver.resolve_state`.

    Example::

        PackageSettings(source="npm:demo@1.0.0", extensions=["-extensions/main.ts"])
    """

    model_config = ConfigDict(extra="allow")

    source: str
    extensions: Optional[list[Any]] = None


PackageEntry = Union[str, PackageSettings]
"""A bare source string (legacy shorthand, no rules) or a detailed entry."""


def _parse_package_entry(value: Any) -> Any:
    """Return a :class:`PackageSettings` for a well-formed object, else *value* as is."""
    if not isinstance(value, dict):
        return value
    try:
        return PackageSettings.model_validate(value)
    except ValidationError:
        return value


class SettingsDocument(BaseModel):
    """One scope's ``settings.json``.

    Only ``packages`` is interpreted; every other key belongs to the host
    agent and is carried through untouched.

    ``packages`` must be a list, but its items are validated one by one: bare
    strings and well-formed objects become :data:`PackageEntry` values, and
    anything else (an object without ``source``, a number, ...) is kept as
    the raw JSON value. Raw items are never interpreted and are written back
    unchanged.
    """

    model_config = ConfigDict(extra="allow")

    packages: list[Any] = Field(default_factory=list)

    @field_validator("packages", mode="before")
    @classmethod
    def _parse_packages(cls, value: Any) -> list[Any]:
        if not isinstance(value, list):
            raise ValueError("packages must be a list")
        return [_parse_package_entry(item) for item in value]


# --- Catalog ---


class InstalledPackage(BaseModel):
    """A package as reported by the package tool's ``list`` command.

    Treated as an immutable snapshot for the duration of one operation.
    """

    model_config = ConfigDict(frozen=True)

    source: str
    name: str
    scope: Scope
    version: Optional[str] = None
    resolved_path: Optional[str] = None


class PackageExtensionEntry(BaseModel):
    """One discovered extension entrypoint with its computed state.

    Rebuilt wholesale on every catalog refresh and never mutated. ``id`` is
    derived from ``(scope, source, extension_path)`` so it is stable across
    rebuilds and can key staged-but-unsaved edits.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    package_source: str
    package_name: str
    package_scope: Scope
    extension_path: str
    absolute_path: str
    display_name: str
    summary: str
    state: State


class ChangeAction(str, enum.Enum):
    """Kinds of mutations recorded in the change history."""

    EXTENSION_TOGGLE = "extension_toggle"
    PACKAGE_INSTALL = "package_install"
    PACKAGE_UPDATE = "package_update"
    PACKAGE_REMOVE = "package_remove"


class ChangeEntry(BaseModel):
    """A single line of the change history file."""

    action: ChangeAction
    source: str
    package_name: Optional[str] = None
    scope: Optional[Scope] = None
    version: Optional[str] = None
    success: bool
    error: Optional[str] = None
    extension_id: Optional[str] = None
    from_state: Optional[State] = None
    to_state: Optional[State] = None
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


# --- Configuration ---


class Backoff(str, enum.Enum):
    """Delay growth strategy between visibility polling attempts."""

    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class TimeoutsConfig(BaseModel):
    """Per-operation timeouts for external commands, in seconds."""

    install: float = Field(default=180.0, description="Package install")
    update: float = Field(default=120.0, description="Single package update")
    update_all: float = Field(default=120.0, description="Bulk update")
    remove: float = Field(default=60.0, description="Package removal (per scope)")
    list: float = Field(default=10.0, description="Package listing")
    npm_root: float = Field(default=2.0, description="`npm root -g` lookup")
    npm_view: float = Field(default=10.0, description="`npm view` version lookup")
    download: float = Field(default=30.0, description="Single-file URL download")


class PollingConfig(BaseModel):
    """Visibility polling after install/remove."""

    max_attempts: int = Field(default=10, ge=1)
    delay_ms: int = Field(default=100, ge=0, description="Base delay in milliseconds")
    backoff: Backoff = Backoff.EXPONENTIAL


class CacheConfig(BaseModel):
    """Lookup cache settings (global package-manager root)."""

    enabled: bool = Field(default=True, description="Enable the lookup cache")
    ttl_seconds: int = Field(default=3600, description="Cache TTL in seconds")


class HistoryConfig(BaseModel):
    """Change history settings."""

    enabled: bool = True
    max_entries: int = Field(default=500, ge=1)


class UpdatesConfig(BaseModel):
    """Background update checks (``extmgr outdated --watch``)."""

    interval_seconds: float = Field(default=3600.0, gt=0, description="Seconds between checks")


class ExtmgrConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/extmgr/config.json``.

    Loaded and saved by :func:`~extmgr.config.load_config` and
    :func:`~extmgr.config.save_config`. See
    :func:`~extmgr.config.resolve_config` for the precedence chain.
    """

    tool: str = Field(default="pi", description="Package-management command")
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    updates: UpdatesConfig = Field(default_factory=UpdatesConfig)
