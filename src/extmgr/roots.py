"""Locate the on-disk root directory of an installed package.

Strategies, tried in order:

1. the ``resolved_path`` reported by the package tool's listing;
2. ``npm:`` sources -- look for ``<name>/package.json`` in the project
   candidates (``<cwd>/.pi/npm/node_modules``, ``<cwd>/node_modules``) and,
   for global packages first, the global candidates (``$(npm root -g)``,
   ``<package dir>/npm/node_modules``);
3. ``file://`` URLs;
4. absolute paths (POSIX, ``C:\\``, UNC);
5. ``./`` and ``../`` paths relative to the project directory;
6. ``~/`` paths relative to the home directory.

A candidate that names ``package.json`` or a script file is replaced by its
directory.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from pathlib import Path
from typing import Optional, Union
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

from extmgr.cache import LookupCache
from extmgr.config import get_package_dir
from extmgr.discovery import MANIFEST_FILENAME
from extmgr.models import InstalledPackage, Scope
from extmgr.runner import CommandRunner, resolve_npm_command
from extmgr.sources import parse_npm_source

logger = logging.getLogger(__name__)

NPM_ROOT_CACHE_KEY = "npm-root-global"

_FILE_CANDIDATE_RE = re.compile(r"(?:^|[\\/])package\.json$|\.[cm]?[jt]s$", re.IGNORECASE)
_WINDOWS_ABSOLUTE_RE = re.compile(r"^[a-zA-Z]:[\\/]")
_RELATIVE_PREFIXES = ("./", "../", ".\\", "..\\")


def normalize_root_candidate(candidate: Union[str, Path]) -> Path:
    """Make *candidate* absolute and strip a trailing manifest or script file name."""
    resolved = os.path.abspath(str(candidate))
    if _FILE_CANDIDATE_RE.search(resolved):
        return Path(os.path.dirname(resolved))
    return Path(resolved)


def file_url_to_path(url: str) -> Path:
    """Convert a ``file://`` URL to a filesystem path."""
    parsed = urlparse(url)
    if parsed.netloc and parsed.netloc != "localhost":
        return Path(f"//{parsed.netloc}{url2pathname(unquote(parsed.path))}")
    return Path(url2pathname(unquote(parsed.path)))


class PackageRootResolver:
    """Resolves :class:`~extmgr.models.InstalledPackage` records to directories.

    The ``npm root -g`` lookup runs at most once per resolver and is also
    kept in the optional :class:`~extmgr.cache.LookupCache`. A failed lookup
    simply removes that candidate.

    Args:
        cwd: Project directory.
        runner: Command runner used for ``npm root -g``.
        cache: Optional persistent cache for the global npm root.
        npm_root_timeout: Timeout in seconds for the ``npm root -g`` lookup.
        package_dir: Directory holding globally installed packages.
            Defaults to :func:`~extmgr.config.get_package_dir`.
    """

    def __init__(
        self,
        cwd: Union[str, Path],
        runner: CommandRunner,
        cache: Optional[LookupCache] = None,
        npm_root_timeout: float = 2.0,
        package_dir: Optional[Union[str, Path]] = None,
    ) -> None:
        self.cwd = Path(cwd)
        self._runner = runner
        self._cache = cache
        self._npm_root_timeout = npm_root_timeout
        self._package_dir = Path(package_dir) if package_dir is not None else None
        self._npm_root: Optional[Path] = None
        self._npm_root_loaded = False

    async def global_npm_root(self) -> Optional[Path]:
        """Return ``npm root -g``, or ``None`` when npm is unavailable."""
        if self._npm_root_loaded:
            return self._npm_root
        self._npm_root_loaded = True

        cached = self._cache.get(NPM_ROOT_CACHE_KEY) if self._cache is not None else None
        if cached:
            self._npm_root = Path(cached)
            return self._npm_root

        command, args = resolve_npm_command(["root", "-g"])
        result = await self._runner.run(command, args, timeout=self._npm_root_timeout, cwd=self.cwd)
        root = result.stdout.strip() if result.ok else ""
        if not root:
            logger.debug("npm root -g unavailable: %s", result.detail())
            return None

        self._npm_root = Path(root)
        if self._cache is not None:
            self._cache.set(NPM_ROOT_CACHE_KEY, root)
        return self._npm_root

    async def _npm_candidates(self, pkg: InstalledPackage, name: str) -> list[Path]:
        project = [
            self.cwd / ".pi" / "npm" / "node_modules" / name,
            self.cwd / "node_modules" / name,
        ]
        if pkg.scope is Scope.PROJECT:
            return project

        package_dir = self._package_dir if self._package_dir is not None else get_package_dir()
        global_candidates = [package_dir / "npm" / "node_modules" / name]
        npm_root = await self.global_npm_root()
        if npm_root is not None:
            global_candidates.insert(0, npm_root / name)
        return global_candidates + project

    async def _resolve_npm(self, pkg: InstalledPackage) -> Optional[Path]:
        npm = parse_npm_source(pkg.source)
        if npm is None or not npm.name:
            return None

        candidates = await self._npm_candidates(pkg, npm.name)

        def _first_with_manifest() -> Optional[Path]:
            for candidate in candidates:
                if (candidate / MANIFEST_FILENAME).is_file():
                    return candidate
            return None

        found = await asyncio.to_thread(_first_with_manifest)
        if found is None:
            logger.debug("No installed copy of %s found in %d candidates", npm.name, len(candidates))
        return found

    async def resolve(self, pkg: InstalledPackage) -> Optional[Path]:
        """Return the root directory of *pkg*, or ``None`` if it cannot be located."""
        if pkg.resolved_path:
            return normalize_root_candidate(pkg.resolved_path)

        source = pkg.source
        if source.startswith("npm:"):
            return await self._resolve_npm(pkg)

        if source.startswith("file://"):
            try:
                return normalize_root_candidate(file_url_to_path(source))
            except ValueError:
                logger.debug("Unparsable file URL: %s", source)
                return None

        if source.startswith("/") or source.startswith("\\\\") or _WINDOWS_ABSOLUTE_RE.match(source):
            return normalize_root_candidate(source)

        if source.startswith(_RELATIVE_PREFIXES):
            return normalize_root_candidate(self.cwd / source)

        if source.startswith("~/"):
            return normalize_root_candidate(Path.home() / source[2:])

        return None
