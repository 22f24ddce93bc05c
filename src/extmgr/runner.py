"""External command execution.

Every call to the package tool and to ``npm`` goes through a
:class:`CommandRunner`. The production implementation,
:class:`SubprocessRunner`, uses :func:`asyncio.create_subprocess_exec` with a
per-call timeout. A command that times out is killed and reported as a
failed :class:`CommandResult` with ``killed=True``; a missing executable is
reported as exit code 127. Neither case raises, so callers only deal with
exit codes.
"""

from __future__ import annotations

import asyncio
import logging
import ntpath
import os
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence, Union

logger = logging.getLogger(__name__)

EXIT_NOT_FOUND = 127
EXIT_TIMED_OUT = 124


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command."""

    code: int
    stdout: str = ""
    stderr: str = ""
    killed: bool = False

    @property
    def ok(self) -> bool:
        return self.code == 0

    def detail(self) -> str:
        """Best single-line explanation of a failure."""
        return self.stderr.strip() or self.stdout.strip() or f"exit {self.code}"


class CommandRunner(Protocol):
    """Anything that can run an external command asynchronously."""

    async def run(
        self,
        command: str,
        args: Sequence[str],
        timeout: float,
        cwd: Optional[Union[str, Path]] = None,
    ) -> CommandResult:
        ...


class SubprocessRunner:
    """Runs commands as child processes with captured output."""

    async def run(
        self,
        command: str,
        args: Sequence[str],
        timeout: float,
        cwd: Optional[Union[str, Path]] = None,
    ) -> CommandResult:
        argv = [command, *args]
        logger.debug("exec %s (timeout %.0fs, cwd %s)", " ".join(argv), timeout, cwd)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd) if cwd is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return CommandResult(EXIT_NOT_FOUND, stderr=f"{command}: command not found")

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("%s timed out after %.0fs", " ".join(argv), timeout)
            return CommandResult(
                EXIT_TIMED_OUT,
                stderr=f"{command} timed out after {timeout:g}s",
                killed=True,
            )

        result = CommandResult(
            code=proc.returncode if proc.returncode is not None else 1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        logger.debug("%s exited with %d", " ".join(argv), result.code)
        return result


def resolve_npm_command(
    npm_args: Sequence[str],
    platform: Optional[str] = None,
    node_exec_path: Optional[str] = None,
) -> tuple[str, list[str]]:
    """Return ``(command, args)`` for running npm on this platform.

    On Windows ``npm`` is a batch shim that cannot be spawned directly, so the
    bundled ``npm-cli.js`` is run with ``node`` instead.
    """
    runtime = platform if platform is not None else sys.platform
    if runtime == "win32":
        node = node_exec_path or _find_node()
        cli = ntpath.join(ntpath.dirname(node), "node_modules", "npm", "bin", "npm-cli.js")
        return node, [cli, *npm_args]
    return "npm", list(npm_args)


def _find_node() -> str:
    found = shutil.which("node")
    if found:
        return found
    program_files = os.environ.get("ProgramFiles", "C:\\Program Files")
    return ntpath.join(program_files, "nodejs", "node.exe")
