"""Shared test fixtures for extmgr.

Provides reusable fixtures for isolated config/agent directories, output
state, a fake package tool that behaves like ``pi`` (``list``, ``install``,
``remove``, ``update``) plus ``npm``, ready-made sessions, and a CLI runner.
These fixtures are automatically discovered by pytest.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import pytest

from extmgr.models import ExtmgrConfig, PollingConfig, Scope
from extmgr.output import OutputFormat, OutputManager, reset_output, set_output
from extmgr.runner import CommandResult


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    Typer's CliRunner swaps sys.stdout/sys.stderr; a manager created during
    one test would otherwise keep writing to closed streams in the next.
    The CLI also reconfigures the ``extmgr`` logger, which is undone here.
    """
    yield
    reset_output()
    logger = logging.getLogger("extmgr")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


# ---------------------------------------------------------------------------
# Fake package tool
# ---------------------------------------------------------------------------


class FakeTool:
    """In-memory stand-in for the package tool and npm.

    Installed packages are kept per scope. ``-l`` selects the project scope,
    exactly like the real tool. Individual invocations can be scripted to
    fail, and ``hidden`` sources are installed but left out of ``list`` to
    simulate a slow settings flush.

    Attributes:
        installed: Sources per scope, in install order.
        calls: Every ``(command, args)`` pair received.
        failures: Maps ``(subcommand, scope)`` to the result to return.
        update_output: stdout returned by a successful ``update``.
        npm_root: stdout of ``npm root -g`` (``None`` means npm fails).
        npm_versions: Package name to ``npm view`` version.
    """

    def __init__(self, tool: str = "pi") -> None:
        self.tool = tool
        self.installed: dict[Scope, list[str]] = {Scope.GLOBAL: [], Scope.PROJECT: []}
        self.resolved: dict[str, str] = {}
        self.calls: list[tuple[str, list[str]]] = []
        self.failures: dict[tuple[str, Scope], CommandResult] = {}
        self.hidden: set[str] = set()
        self.sticky: set[str] = set()
        self.update_output = "Updated 1 package\n"
        self.list_fails = False
        self.npm_root: Optional[str] = None
        self.npm_versions: dict[str, str] = {}

    def add(self, source: str, scope: Scope = Scope.GLOBAL, resolved: Optional[str] = None) -> None:
        self.installed[scope].append(source)
        if resolved is not None:
            self.resolved[source] = resolved

    def tool_calls(self, subcommand: Optional[str] = None) -> list[list[str]]:
        return [
            args
            for command, args in self.calls
            if command == self.tool and (subcommand is None or args[:1] == [subcommand])
        ]

    def render_list(self) -> str:
        if not any(self.installed.values()):
            return "No packages installed\n"
        lines: list[str] = []
        for header, scope in (("Global:", Scope.GLOBAL), ("Project:", Scope.PROJECT)):
            visible = [s for s in self.installed[scope] if s not in self.hidden]
            if not visible:
                continue
            lines.append(header)
            for source in visible:
                lines.append(f"  {source}")
                if source in self.resolved:
                    lines.append(f"    {self.resolved[source]}")
        return "\n".join(lines) + "\n"

    async def run(
        self,
        command: str,
        args: Sequence[str],
        timeout: float,
        cwd: Optional[Union[str, Path]] = None,
    ) -> CommandResult:
        args = list(args)
        self.calls.append((command, args))

        if command == "npm":
            return self._npm(args)
        if command != self.tool:
            return CommandResult(127, stderr=f"{command}: command not found")

        sub = args[0]
        rest = args[1:]
        scope = Scope.GLOBAL
        if rest[:1] == ["-l"]:
            scope = Scope.PROJECT
            rest = rest[1:]

        if (sub, scope) in self.failures:
            return self.failures[(sub, scope)]

        if sub == "list":
            if self.list_fails:
                return CommandResult(1, stderr="list failed")
            return CommandResult(0, stdout=self.render_list())
        if sub == "install":
            self.installed[scope].append(rest[0])
            return CommandResult(0, stdout=f"Installed {rest[0]}\n")
        if sub == "remove":
            source = rest[0]
            if source not in self.installed[scope]:
                return CommandResult(1, stderr=f"{source} is not installed")
            if source not in self.sticky:
                self.installed[scope].remove(source)
            return CommandResult(0, stdout=f"Removed {source}\n")
        if sub == "update":
            return CommandResult(0, stdout=self.update_output)
        return CommandResult(2, stderr=f"unknown command {sub}")

    def _npm(self, args: list[str]) -> CommandResult:
        if args[:2] == ["root", "-g"]:
            if self.npm_root is None:
                return CommandResult(1, stderr="npm unavailable")
            return CommandResult(0, stdout=self.npm_root + "\n")
        if args[:1] == ["view"]:
            version = self.npm_versions.get(args[1])
            if version is None:
                return CommandResult(1, stderr="E404")
            return CommandResult(0, stdout=json.dumps(version))
        return CommandResult(1, stderr="unsupported npm call")


class ScriptedPrompter:
    """Prompter answering from fixed replies and recording every question."""

    def __init__(self, selection: Optional[str] = None, confirm: bool = True) -> None:
        self.selection = selection
        self.confirm_reply = confirm
        self.selects: list[tuple[str, list[str]]] = []
        self.confirms: list[tuple[str, str]] = []

    def select(self, title: str, options: Sequence[str]) -> Optional[str]:
        self.selects.append((title, list(options)))
        return self.selection

    def confirm(self, title: str, message: str) -> bool:
        self.confirms.append((title, message))
        return self.confirm_reply


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and host directories to a temporary directory.

    Sets the XDG variables and the agent/package directory variables to
    subdirectories of tmp_path, clears EXTMGR_TOOL, and changes the working
    directory to ``tmp_path / "project"``.

    Returns:
        The tmp_path root directory.
    """
    monkeypatch.setattr("extmgr.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setenv("PI_CODING_AGENT_DIR", str(tmp_path / "agent"))
    monkeypatch.setenv("PI_PACKAGE_DIR", str(tmp_path / "agent"))
    monkeypatch.delenv("EXTMGR_TOOL", raising=False)

    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.chdir(project)
    return tmp_path


@pytest.fixture
def fake_tool() -> FakeTool:
    return FakeTool()


@pytest.fixture
def fast_config() -> ExtmgrConfig:
    """Default config with instant visibility polling."""
    return ExtmgrConfig(polling=PollingConfig(max_attempts=3, delay_ms=0))


@pytest.fixture
def make_session(isolated_config: Path, fake_tool: FakeTool, fast_config: ExtmgrConfig):
    """Factory building a Session wired to the fake tool.

    Call with ``prompter=...`` for an interactive session.
    """
    from extmgr.session import Session

    sessions = []

    def _make(prompter: Any = None):
        session = Session.create(
            cwd=isolated_config / "project",
            config=fast_config,
            runner=fake_tool,
            prompter=prompter,
        )
        sessions.append(session)
        return session

    yield _make
    for session in sessions:
        session.close()


# ---------------------------------------------------------------------------
# Package tree helpers
# ---------------------------------------------------------------------------


def write_package(root: Path, files: dict[str, str], manifest: Optional[dict] = None) -> Path:
    """Create a package directory with *files* and an optional manifest."""
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    if manifest is not None:
        (root / "package.json").write_text(json.dumps(manifest), encoding="utf-8")
    return root


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager for the test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner that captures stdout/stderr."""
    from typer.testing import CliRunner

    return CliRunner()


@pytest.fixture
def cli_env(isolated_config: Path, fake_tool: FakeTool, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Make every CLI-created Session use the fake tool and instant polling.

    Returns:
        The isolated tmp_path root directory.
    """
    from extmgr.session import Session

    create = Session.create

    def _create(
        cwd: Optional[Union[str, Path]] = None,
        config: Optional[ExtmgrConfig] = None,
        runner: Any = None,
        prompter: Any = None,
    ) -> Session:
        config = (config or ExtmgrConfig()).model_copy(
            update={"polling": PollingConfig(max_attempts=3, delay_ms=0)}
        )
        return create(cwd=cwd, config=config, runner=fake_tool, prompter=prompter)

    monkeypatch.setattr(Session, "create", _create)
    return isolated_config
