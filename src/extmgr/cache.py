"""Disk-based cache for slow external lookups.

Uses :mod:`diskcache` to persist the results of lookups that spawn a
process, such as ``npm root -g`` and ``npm view <name> version``, with a
configurable time-to-live. Only successful lookups are stored, so a
transient failure is retried on the next run.

See Also:
    :class:`~extmgr.models.CacheConfig` -- controls ``enabled`` and
    ``ttl_seconds``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Union

import diskcache

from extmgr.models import CacheConfig


class LookupCache:
    """Disk-backed key/value cache with a fixed TTL.

    Args:
        cache_dir: Root directory for the cache. A ``lookups/`` subdirectory
            is created inside it.
        config: Cache configuration (``enabled`` flag and ``ttl_seconds``).

    Example::

        cache = LookupCache("/tmp/extmgr-cache", CacheConfig(ttl_seconds=600))
        cache.set("npm-root", "/usr/lib/node_modules")
        cache.get("npm-root")
    """

    def __init__(self, cache_dir: Union[str, Path], config: CacheConfig) -> None:
        self._config = config
        self._cache_dir = Path(cache_dir)
        self._cache: Optional[diskcache.Cache] = None
        if config.enabled:
            self._cache = diskcache.Cache(str(self._cache_dir / "lookups"))

    @property
    def enabled(self) -> bool:
        return self._cache is not None

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value for *key*, or ``None`` on a miss."""
        if self._cache is None:
            return None
        return self._cache.get(key)

    def set(self, key: str, value: Any) -> None:
        """Store *value* under *key*. ``None`` values are not cached."""
        if self._cache is None or value is None:
            return
        self._cache.set(key, value, expire=self._config.ttl_seconds)

    def invalidate(self, key: str) -> None:
        if self._cache is not None:
            self._cache.delete(key)

    def clear(self) -> None:
        """Remove all entries from the cache."""
        if self._cache is not None:
            self._cache.clear()

    def stats(self) -> dict[str, Any]:
        """Return ``enabled`` and, when enabled, ``size``, ``directory`` and ``ttl_seconds``."""
        if self._cache is None:
            return {"enabled": False}
        return {
            "enabled": True,
            "size": len(self._cache),
            "directory": str(self._cache_dir / "lookups"),
            "ttl_seconds": self._config.ttl_seconds,
        }

    def close(self) -> None:
        if self._cache is not None:
            self._cache.close()
