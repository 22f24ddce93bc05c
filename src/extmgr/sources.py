"""Package source strings: parsing, normalization, and identity.

The package tool accepts several source shapes::

    npm:<name>[@<version>]        npm:@scope/name@1.2.3
    git:<repo>[@<ref>]            git:github.com/user/repo@v1
    git@host:user/repo.git        https://github.com/user/repo
    /abs/path  ./rel  ../rel  ~/home-rel  file:///abs  C:\\path  \\\\unc

Two sources that refer to the same package may be spelled differently
(``npm:demo@1.0.0`` and ``demo (pinned)``). :func:`package_identity` maps
both to one identity key so that removal can find every scope a package is
installed in.
"""

from __future__ import annotations

import enum
import posixpath
import re
from typing import NamedTuple, Optional

from extmgr.settings import normalize_source

_NPM_NAME_RE = re.compile(
    r"^(?:@[a-z0-9][a-z0-9._~-]*/)?[a-z0-9][a-z0-9._~-]*(?:@[^\s@/]+)?$",
    re.IGNORECASE,
)
_WINDOWS_ABSOLUTE_RE = re.compile(r"^[a-zA-Z]:[\\/]")
_GIT_PREFIXES = ("git:", "git@", "git+", "git://", "ssh://", "http://", "https://")
_LOCAL_PREFIXES = ("/", "./", "../", ".\\", "..\\", "~/", "file://", "\\\\")
_INDEX_FILE_RE = re.compile(r"^index\.[cm]?[jt]s$", re.IGNORECASE)


class SourceKind(str, enum.Enum):
    NPM = "npm"
    GIT = "git"
    LOCAL = "local"
    UNKNOWN = "unknown"


class NpmSource(NamedTuple):
    """A parsed ``npm:`` source."""

    name: str
    version: Optional[str] = None


class GitSource(NamedTuple):
    """A git repository spec split into repository and optional ref."""

    repo: str
    ref: Optional[str] = None


def parse_npm_source(source: str) -> Optional[NpmSource]:
    """Parse an ``npm:`` source into name and version.

    Returns:
        The parsed source, or ``None`` when *source* is not an npm source.

    Example::

        >>> parse_npm_source("npm:@scope/pkg@2.0.0")
        NpmSource(name='@scope/pkg', version='2.0.0')
    """
    if not source.startswith("npm:"):
        return None
    spec = source[4:].strip()
    if not spec:
        return None

    search_from = spec.find("/") if spec.startswith("@") else 0
    at = spec.find("@", max(search_from, 1))
    if at == -1:
        return NpmSource(spec)
    return NpmSource(spec[:at], spec[at + 1 :] or None)


def is_npm_package_name(value: str) -> bool:
    """Return True if *value* looks like a bare npm package spec (``name[@version]``)."""
    return bool(_NPM_NAME_RE.match(value))


def get_package_source_kind(source: str) -> SourceKind:
    """Classify *source* by its prefix."""
    if source.startswith("npm:"):
        return SourceKind.NPM
    if source.startswith(_GIT_PREFIXES):
        return SourceKind.GIT
    if source.startswith(_LOCAL_PREFIXES) or _WINDOWS_ABSOLUTE_RE.match(source):
        return SourceKind.LOCAL
    return SourceKind.UNKNOWN


def split_git_repo_and_ref(spec: str) -> GitSource:
    """Split ``repo@ref`` on the last ``@`` that follows the last ``/``.

    ``git@host:user/repo`` is left intact because its ``@`` precedes the
    path.
    """
    at = spec.rfind("@")
    if at > 0 and at > spec.rfind("/"):
        return GitSource(spec[:at], spec[at + 1 :] or None)
    return GitSource(spec)


def normalize_local_source_identity(source: str) -> str:
    """Canonical form of a local path source for identity comparison.

    Drops a ``file://`` prefix, converts backslashes to slashes, and strips
    trailing slashes. Case is preserved.
    """
    path = source[len("file://") :] if source.startswith("file://") else source
    path = path.replace("\\", "/")
    stripped = path.rstrip("/")
    return stripped or path


def normalize_package_source(source: str) -> str:
    """Normalize a user-entered source before handing it to the package tool.

    Bare npm names gain an ``npm:`` prefix and ``git@`` SSH specs gain a
    ``git:`` prefix. Everything else is returned trimmed.
    """
    value = source.strip()
    if value.startswith("git@"):
        return f"git:{value}"
    if get_package_source_kind(value) is SourceKind.UNKNOWN and is_npm_package_name(value):
        return f"npm:{value}"
    return value


def package_identity(source: str, fallback_name: Optional[str] = None) -> str:
    """Return the identity key used to match a package across scopes.

    Keys are ``npm:<name>``, ``git:<repo>``, ``src:<local path>``,
    ``name:<fallback>``, or ``src:<raw source>``.

    Example::

        >>> package_identity("npm:demo@1.0.0") == package_identity("demo (pinned)")
        True
    """
    value = normalize_source(source)
    kind = get_package_source_kind(value)

    if kind is SourceKind.UNKNOWN and is_npm_package_name(value):
        value = f"npm:{value}"
        kind = SourceKind.NPM

    if kind is SourceKind.NPM:
        npm = parse_npm_source(value)
        if npm is not None:
            return f"npm:{npm.name}"

    if kind is SourceKind.GIT:
        spec = value[4:] if value.startswith("git:") else value
        return f"git:{split_git_repo_and_ref(spec).repo}"

    if kind is SourceKind.LOCAL:
        return f"src:{normalize_local_source_identity(value)}"

    if fallback_name:
        return f"name:{fallback_name}"
    return f"src:{value}"


def package_display_name(source: str) -> str:
    """Derive a short package name from *source* for listings.

    npm sources yield the package name, git sources the repository name
    without ``.git``, and local paths their directory name (the parent
    directory when the path names an ``index`` file).
    """
    value = normalize_source(source)
    kind = get_package_source_kind(value)

    if kind is SourceKind.NPM:
        npm = parse_npm_source(value)
        return npm.name if npm is not None else value

    if kind is SourceKind.GIT:
        spec = value[4:] if value.startswith("git:") else value
        repo = split_git_repo_and_ref(spec).repo.rstrip("/")
        tail = re.split(r"[/:]", repo)[-1]
        return tail[:-4] if tail.endswith(".git") else tail

    if kind is SourceKind.LOCAL:
        path = normalize_local_source_identity(value)
        base = posixpath.basename(path)
        if _INDEX_FILE_RE.match(base):
            parent = posixpath.basename(posixpath.dirname(path))
            return parent or base
        return base or path

    npm_like = parse_npm_source(f"npm:{value}") if is_npm_package_name(value) else None
    return npm_like.name if npm_like is not None else value
