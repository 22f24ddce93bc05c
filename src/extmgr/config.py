"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for extmgr:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.extmgr/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **Host directories** -- the agent directory holding global
  ``settings.json`` (:func:`get_agent_dir`) and the directory holding
  globally installed packages (:func:`get_package_dir`).
* **Tool config** -- A single :class:`~extmgr.models.ExtmgrConfig` JSON file
  storing the package-management command, timeouts, polling, cache, and
  history settings.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, and the config file into the effective
  configuration.

Config writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from extmgr.exceptions import ConfigError
from extmgr.models import ExtmgrConfig

_APP_NAME = "extmgr"
_CONFIG_FILENAME = "config.json"

ENV_TOOL = "EXTMGR_TOOL"
ENV_AGENT_DIR = "PI_CODING_AGENT_DIR"
ENV_PACKAGE_DIR = "PI_PACKAGE_DIR"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/extmgr/`` (default ``~/.config/extmgr/``).
    On macOS/Windows: ``~/.extmgr/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Holds the lookup cache (global package-manager root). Cached data can be
    safely deleted at any time.

    On Linux/BSD: ``$XDG_CACHE_HOME/extmgr/`` (default ``~/.cache/extmgr/``).
    On macOS/Windows: ``~/.extmgr/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (change history, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/extmgr/`` (default ``~/.local/share/extmgr/``).
    On macOS/Windows: ``~/.extmgr/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Host agent directories ---


def get_agent_dir() -> Path:
    """Return the host agent directory that holds the global ``settings.json``.

    ``$PI_CODING_AGENT_DIR`` when set, else ``~/.pi/agent``. The directory is
    not created here; the settings store creates it on first write.
    """
    env_value = os.environ.get(ENV_AGENT_DIR, "")
    if env_value:
        return Path(env_value).expanduser()
    return Path.home() / ".pi" / "agent"


def get_package_dir() -> Path:
    """Return the directory under which the host installs global npm packages.

    ``$PI_PACKAGE_DIR`` when set, else ``~/.pi/agent``.
    """
    env_value = os.environ.get(ENV_PACKAGE_DIR, "")
    if env_value:
        return Path(env_value).expanduser()
    return Path.home() / ".pi" / "agent"


# --- Atomic file writes ---


def atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. On any failure the
    temp file is cleaned up and the error is re-raised.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Tool config ---


def config_path() -> Path:
    """Path to the tool config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_config() -> ExtmgrConfig:
    """Load the tool configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~extmgr.models.ExtmgrConfig`. If the file
        does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = config_path()
    if not path.is_file():
        return ExtmgrConfig()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        return ExtmgrConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: ExtmgrConfig) -> None:
    """Persist the tool configuration atomically to disk.

    Args:
        config: The configuration to save.
    """
    data = config.model_dump(mode="json")
    atomic_write(config_path(), json.dumps(data, indent=2) + "\n")


# --- Precedence resolution ---


def resolve_config(cli_tool: Optional[str] = None) -> ExtmgrConfig:
    """Resolve config with the full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_tool``)
        2. Environment variables (``EXTMGR_TOOL``)
        3. User config (``~/.config/extmgr/config.json``)
        4. Defaults

    Returns:
        The effective :class:`~extmgr.models.ExtmgrConfig`.
    """
    config = load_config()

    env_tool = os.environ.get(ENV_TOOL)
    if env_tool:
        config.tool = env_tool
    if cli_tool is not None:
        config.tool = cli_tool

    return config
