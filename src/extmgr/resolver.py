"""Filter-rule evaluation for a single extension entrypoint.

A package's ``extensions`` list in ``settings.json`` is an ordered list of
*filter tokens*:

* ``+<path>`` / ``-<path>`` -- override marker forcing one path on or off.
* ``!<pattern>`` -- exclude pattern.
* ``<pattern>`` -- include pattern.
* anything else (blank strings, non-string values) -- an annotation that
  is carried through writes but never affects a verdict.

Priority, highest first: overrides, excludes, includes, default. Among
override markers for the same path the last one in list order wins.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from extmgr.models import State
from extmgr.paths import matches_filter_pattern, normalize_relative_path


@dataclass
class FilterRules:
    """Partitioned view of a filter token list.

    Attributes:
        includes: Normalized include patterns, in list order.
        excludes: Normalized exclude patterns, in list order.
        overrides: ``(normalized path, state)`` pairs, in list order.
    """

    includes: list[str] = field(default_factory=list)
    excludes: list[str] = field(default_factory=list)
    overrides: list[tuple[str, State]] = field(default_factory=list)

    def override_for(self, path: str) -> Optional[State]:
        """Return the last override recorded for *path*, if any."""
        verdict: Optional[State] = None
        for marker_path, state in self.overrides:
            if marker_path == path:
                verdict = state
        return verdict


def is_override_marker(token: Any) -> bool:
    """Return True if *token* is a ``+path`` or ``-path`` marker."""
    if not isinstance(token, str):
        return False
    stripped = token.strip()
    return bool(stripped) and stripped[0] in "+-"


def marker_path(token: str) -> str:
    """Return the normalized path an override marker targets."""
    return normalize_relative_path(token.strip()[1:])


def make_marker(path: str, state: State) -> str:
    """Build the override marker that forces *path* to *state*."""
    prefix = "+" if state is State.ENABLED else "-"
    return f"{prefix}{normalize_relative_path(path)}"


def parse_filter_tokens(tokens: Sequence[Any]) -> FilterRules:
    """Partition *tokens* into includes, excludes, and override markers.

    Annotation tokens are skipped. Patterns that normalize to an empty
    string are dropped.
    """
    rules = FilterRules()
    for raw in tokens:
        if not isinstance(raw, str):
            continue
        token = raw.strip()
        if not token:
            continue
        prefix = token[0]
        if prefix in "+-":
            state = State.ENABLED if prefix == "+" else State.DISABLED
            rules.overrides.append((normalize_relative_path(token[1:]), state))
        elif prefix == "!":
            pattern = normalize_relative_path(token[1:])
            if pattern:
                rules.excludes.append(pattern)
        else:
            pattern = normalize_relative_path(token)
            if pattern:
                rules.includes.append(pattern)
    return rules


def resolve_state(tokens: Optional[Sequence[Any]], extension_path: str) -> State:
    """Compute whether *extension_path* is enabled under *tokens*.

    Args:
        tokens: The package's ``extensions`` list, or ``None`` when the key
            is absent from its settings entry.
        extension_path: Entrypoint path relative to the package root.

    Returns:
        :attr:`State.ENABLED` or :attr:`State.DISABLED`. An absent list
        enables everything; an empty list disables everything.
    """
    if tokens is None:
        return State.ENABLED
    if len(tokens) == 0:
        return State.DISABLED

    target = normalize_relative_path(extension_path)
    rules = parse_filter_tokens(tokens)

    enabled = not rules.includes or any(
        matches_filter_pattern(target, pattern) for pattern in rules.includes
    )
    if enabled and any(matches_filter_pattern(target, pattern) for pattern in rules.excludes):
        enabled = False

    override = rules.override_for(target)
    if override is not None:
        return override
    return State.ENABLED if enabled else State.DISABLED
