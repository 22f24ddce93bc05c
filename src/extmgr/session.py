"""Per-invocation context shared by commands and coordinators.

A :class:`Session` bundles everything one action needs: the project
directory, the effective configuration, the settings store, the command
runner, the change history, the package root resolver, the optional prompter,
and the scheduler. Nothing here is global; two sessions never share state.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from extmgr.cache import LookupCache
from extmgr.config import get_agent_dir, get_cache_dir, get_data_dir, resolve_config
from extmgr.history import HISTORY_FILENAME, ChangeHistory
from extmgr.models import ExtmgrConfig
from extmgr.prompts import Prompter
from extmgr.roots import PackageRootResolver
from extmgr.runner import CommandRunner, SubprocessRunner
from extmgr.scheduler import Scheduler
from extmgr.settings import SettingsStore


@dataclass
class Session:
    cwd: Path
    config: ExtmgrConfig
    store: SettingsStore
    runner: CommandRunner
    history: ChangeHistory
    roots: PackageRootResolver
    prompter: Optional[Prompter] = None
    cache: Optional[LookupCache] = None
    scheduler: Scheduler = field(default_factory=Scheduler)

    @classmethod
    def create(
        cls,
        cwd: Optional[Union[str, Path]] = None,
        config: Optional[ExtmgrConfig] = None,
        runner: Optional[CommandRunner] = None,
        prompter: Optional[Prompter] = None,
    ) -> Session:
        """Build a session with default collaborators.

        Args:
            cwd: Project directory. Defaults to the current directory.
            config: Effective configuration. Defaults to :func:`resolve_config`.
            runner: Command runner. Defaults to :class:`SubprocessRunner`.
            prompter: Interactive prompter, or ``None`` for non-interactive use.
        """
        project = Path(cwd) if cwd is not None else Path(os.getcwd())
        config = config if config is not None else resolve_config()
        runner = runner if runner is not None else SubprocessRunner()

        cache = LookupCache(get_cache_dir(), config.cache) if config.cache.enabled else None
        history = ChangeHistory(
            get_data_dir() / HISTORY_FILENAME,
            max_entries=config.history.max_entries,
            enabled=config.history.enabled,
        )
        return cls(
            cwd=project,
            config=config,
            store=SettingsStore(project, get_agent_dir()),
            runner=runner,
            history=history,
            roots=PackageRootResolver(
                project, runner, cache=cache, npm_root_timeout=config.timeouts.npm_root
            ),
            prompter=prompter,
            cache=cache,
        )

    @property
    def has_ui(self) -> bool:
        """True when the user can be asked questions."""
        return self.prompter is not None

    def close(self) -> None:
        self.scheduler.stop()
        if self.cache is not None:
            self.cache.close()
