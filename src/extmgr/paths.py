"""Relative-path normalization and path-aware glob matching.

All extension paths in settings and manifests are compared in a single
canonical form produced by :func:`normalize_relative_path`: forward slashes,
no leading ``./`` and no leading ``/``.

Glob matching is delegated to :func:`wcmatch.glob.globmatch` with
``GLOBSTAR`` and ``BRACE``:

* ``*`` and ``?`` never cross a ``/``.
* ``**`` used as a whole segment spans any number of directories.
* ``[abc]``, ``[a-z]``, ``[!abc]`` and ``[^abc]`` match one character other
  than ``/``.
* ``{a,b}`` matches either alternative (alternatives may nest).
* Wildcards do not match a leading ``.`` in a segment unless the pattern
  spells the dot out.

An unterminated ``[`` or ``{`` is taken literally. A pattern the matcher
refuses (a brace expansion past its size limit) is reported as
:attr:`MatchResult.INVALID` rather than raising, so a single bad rule in a
settings file can never break catalog building.
"""

from __future__ import annotations

import enum

from wcmatch import glob
from wcmatch._wcparse import PatternLimitException

GLOB_MAGIC_CHARS = frozenset("*?{}[]")

GLOB_FLAGS = glob.GLOBSTAR | glob.BRACE


class MatchResult(enum.Enum):
    """Outcome of :func:`match_glob`."""

    MATCH = "match"
    NO_MATCH = "no_match"
    INVALID = "invalid"


def normalize_relative_path(path: str) -> str:
    """Return *path* in canonical relative form.

    Backslashes become forward slashes, one leading ``./`` is removed, and
    any leading slashes are stripped. The function is total.

    Example::

        >>> normalize_relative_path(".\\\\extensions\\\\main.ts")
        'extensions/main.ts'
    """
    normalized = path.replace("\\", "/")
    if normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.lstrip("/")


def is_safe_relative_path(path: str) -> bool:
    """Return False for paths that are empty or climb out of their root.

    ``""``, ``".."``, anything starting with ``../`` and anything containing a
    ``/../`` segment are unsafe.
    """
    if path == "" or path == "..":
        return False
    if path.startswith("../"):
        return False
    return "/../" not in path


def has_glob_magic(path: str) -> bool:
    """Return True if *path* contains any glob metacharacter."""
    return any(ch in GLOB_MAGIC_CHARS for ch in path)


def match_glob(target: str, pattern: str) -> MatchResult:
    """Match *target* against a glob *pattern*.

    Args:
        target: A normalized relative path.
        pattern: The glob pattern.

    Returns:
        :attr:`MatchResult.MATCH` or :attr:`MatchResult.NO_MATCH`, or
        :attr:`MatchResult.INVALID` when the matcher rejects the pattern.
    """
    try:
        matched = glob.globmatch(target, pattern, flags=GLOB_FLAGS)
    except PatternLimitException:
        return MatchResult.INVALID
    return MatchResult.MATCH if matched else MatchResult.NO_MATCH


def matches_filter_pattern(target: str, pattern: str) -> bool:
    """Decide whether a filter rule *pattern* selects *target*.

    The pattern is normalized and trimmed first. A blank pattern selects
    nothing, an exact path selects itself, and anything else is matched as a
    glob. Malformed globs select nothing. Never raises.
    """
    normalized = normalize_relative_path(pattern.strip())
    if not normalized:
        return False
    if target == normalized:
        return True
    return match_glob(target, normalized) is MatchResult.MATCH
