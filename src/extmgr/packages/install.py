"""Install packages through the tool, or single files from GitHub.

A GitHub ``blob`` link or a ``raw.githubusercontent.com`` link to a ``.ts``
file is downloaded straight into the scope's ``extensions`` directory.
Every other source is normalized and handed to ``<tool> install``.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from extmgr.exceptions import DownloadError, ExternalCommandError, VisibilityTimeoutError
from extmgr.models import ChangeAction, Scope
from extmgr.packages.base import PackageCoordinator, tool_args
from extmgr.session import Session
from extmgr.sources import normalize_package_source

logger = logging.getLogger(__name__)

SCOPE_OPTIONS = [
    "Global (~/.pi/agent/settings.json)",
    "Project (.pi/settings.json)",
    "Cancel",
]

_GITHUB_BLOB_RE = re.compile(r"^https://github\.com/([^/]+)/([^/]+)/blob/([^/]+)/(.+\.ts)$")
_GITHUB_RAW_RE = re.compile(r"^https://raw\.githubusercontent\.com/.*\.ts$")


class InstallStatus(str, enum.Enum):
    INSTALLED = "installed"
    CANCELLED = "cancelled"


@dataclass
class InstallOutcome:
    """Result of an install attempt.

    ``path`` is set for single-file downloads. ``warning`` is set when the
    package was installed but did not show up in ``list`` in time.
    """

    source: str
    scope: Optional[Scope]
    status: InstallStatus
    path: Optional[Path] = None
    warning: Optional[VisibilityTimeoutError] = None


def github_download(source: str) -> Optional[tuple[str, str]]:
    """Return ``(raw url, file name)`` when *source* links to a single ``.ts`` file."""
    match = _GITHUB_BLOB_RE.match(source)
    if match:
        owner, repo, branch, file_path = match.groups()
        raw_url = f"https://raw.githubusercontent.com/{owner}/{repo}/{branch}/{file_path}"
        return raw_url, file_path.rsplit("/", 1)[-1] or f"{owner}-{repo}.ts"
    if _GITHUB_RAW_RE.match(source):
        return source, source.rsplit("/", 1)[-1] or "extension.ts"
    return None


class PackageInstaller(PackageCoordinator):
    """Installs packages into the global or project scope.

    Args:
        session: The active session.
        transport: Optional httpx transport used for single-file downloads.
    """

    def __init__(self, session: Session, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        super().__init__(session)
        self._transport = transport

    def resolve_scope(self, scope: Optional[Scope] = None) -> Optional[Scope]:
        """Explicit scope, else the prompter's choice, else global. ``None`` means cancelled."""
        if scope is not None:
            return scope
        prompter = self.session.prompter
        if prompter is None:
            return Scope.GLOBAL
        choice = prompter.select("Install scope", SCOPE_OPTIONS)
        if not choice or choice == "Cancel":
            return None
        return Scope.PROJECT if choice.startswith("Project") else Scope.GLOBAL

    def extensions_dir(self, scope: Scope) -> Path:
        if scope is Scope.PROJECT:
            return self.session.cwd / ".pi" / "extensions"
        return self.session.store.agent_dir / "extensions"

    def _confirm(self, title: str, message: str) -> bool:
        prompter = self.session.prompter
        return prompter is None or prompter.confirm(title, message)

    async def install_package(self, source: str, scope: Optional[Scope] = None) -> InstallOutcome:
        """Install *source* into *scope*.

        Raises:
            ExternalCommandError: If ``<tool> install`` exits non-zero.
            DownloadError: If a single-file download fails.
        """
        target = self.resolve_scope(scope)
        if target is None:
            return InstallOutcome(source=source, scope=None, status=InstallStatus.CANCELLED)

        download = github_download(source)
        if download is not None:
            url, file_name = download
            return await self.install_from_url(url, file_name, target)

        normalized = normalize_package_source(source)
        if not self._confirm("Install Package", f"Install {normalized} ({target.value})?"):
            return InstallOutcome(source=normalized, scope=target, status=InstallStatus.CANCELLED)

        args = tool_args("install", target, normalized)
        result = await self.run_tool(args, timeout=self.session.config.timeouts.install)
        if not result.ok:
            error = ExternalCommandError("Install", [self.tool, *args], result.code, result.stdout, result.stderr)
            self.session.history.log_package(
                ChangeAction.PACKAGE_INSTALL,
                normalized,
                success=False,
                package_name=normalized,
                scope=target,
                error=str(error),
            )
            raise error

        self.session.history.log_package(
            ChangeAction.PACKAGE_INSTALL, normalized, success=True, package_name=normalized, scope=target
        )
        logger.info("Installed %s (%s)", normalized, target.value)

        outcome = InstallOutcome(source=normalized, scope=target, status=InstallStatus.INSTALLED)
        visible = await self.wait_until(lambda: self.is_source_installed(normalized, target))
        if not visible:
            outcome.warning = VisibilityTimeoutError(
                f"{normalized} is not listed in {target.value} scope yet. Reload manually if needed.",
                attempts=self.session.config.polling.max_attempts,
            )
            logger.info("%s", outcome.warning)
        return outcome

    async def install_from_url(self, url: str, file_name: str, scope: Optional[Scope] = None) -> InstallOutcome:
        """Download a single extension file into the scope's extensions directory.

        Raises:
            DownloadError: If the request fails or the file cannot be written.
        """
        target = self.resolve_scope(scope)
        if target is None:
            return InstallOutcome(source=url, scope=None, status=InstallStatus.CANCELLED)

        if not self._confirm("Install from URL", f"Download {file_name} to {target.value} extensions?"):
            return InstallOutcome(source=url, scope=target, status=InstallStatus.CANCELLED)

        dest = self.extensions_dir(target) / file_name
        try:
            async with httpx.AsyncClient(
                timeout=self.session.config.timeouts.download,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_text(response.text, encoding="utf-8")
        except httpx.HTTPStatusError as exc:
            self._log_download_failure(url, file_name, target, f"HTTP {exc.response.status_code}")
            raise DownloadError(f"Download failed: HTTP {exc.response.status_code} for {url}") from exc
        except (httpx.RequestError, OSError) as exc:
            self._log_download_failure(url, file_name, target, str(exc))
            raise DownloadError(f"Download failed: {exc}") from exc

        self.session.history.log_package(
            ChangeAction.PACKAGE_INSTALL, url, success=True, package_name=file_name, scope=target
        )
        logger.info("Downloaded %s to %s", file_name, dest)
        return InstallOutcome(source=url, scope=target, status=InstallStatus.INSTALLED, path=dest)

    def _log_download_failure(self, url: str, file_name: str, scope: Scope, error: str) -> None:
        self.session.history.log_package(
            ChangeAction.PACKAGE_INSTALL, url, success=False, package_name=file_name, scope=scope, error=error
        )
