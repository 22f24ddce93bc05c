"""Tests for PackageInstaller -- tool installs and single-file downloads."""

from __future__ import annotations

import httpx
import pytest

from conftest import ScriptedPrompter

from extmgr.exceptions import DownloadError, ExternalCommandError, VisibilityTimeoutError
from extmgr.models import ChangeAction, Scope
from extmgr.packages import InstallStatus, PackageInstaller, tool_args
from extmgr.packages.install import SCOPE_OPTIONS, github_download
from extmgr.runner import CommandResult


BLOB_URL = "https://github.com/acme/tools/blob/main/src/hello.ts"
RAW_URL = "https://raw.githubusercontent.com/acme/tools/main/src/hello.ts"


def _transport(status: int = 200, body: str = "// hello\n", seen: list | None = None) -> httpx.MockTransport:
    def _handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(str(request.url))
        return httpx.Response(status, text=body)

    return httpx.MockTransport(_handler)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_tool_args(self) -> None:
        assert tool_args("list") == ["list"]
        assert tool_args("install", Scope.GLOBAL, "npm:a") == ["install", "npm:a"]
        assert tool_args("remove", Scope.PROJECT, "npm:a") == ["remove", "-l", "npm:a"]

    def test_blob_link(self) -> None:
        assert github_download(BLOB_URL) == (RAW_URL, "hello.ts")

    def test_raw_link(self) -> None:
        assert github_download(RAW_URL) == (RAW_URL, "hello.ts")

    @pytest.mark.parametrize(
        "source",
        [
            "https://github.com/acme/tools",
            "https://github.com/acme/tools/blob/main/README.md",
            "npm:demo",
        ],
    )
    def test_not_a_file_link(self, source: str) -> None:
        assert github_download(source) is None


# ---------------------------------------------------------------------------
# Tool installs
# ---------------------------------------------------------------------------


class TestInstallPackage:
    @pytest.mark.asyncio
    async def test_defaults_to_global(self, make_session, fake_tool) -> None:
        session = make_session()
        outcome = await PackageInstaller(session).install_package(" demo ")

        assert outcome.status is InstallStatus.INSTALLED
        assert outcome.scope is Scope.GLOBAL
        assert outcome.source == "npm:demo"
        assert outcome.warning is None
        assert fake_tool.tool_calls("install") == [["install", "npm:demo"]]

        (entry,) = session.history.entries()
        assert entry.action is ChangeAction.PACKAGE_INSTALL
        assert entry.success is True
        assert entry.scope is Scope.GLOBAL

    @pytest.mark.asyncio
    async def test_project_scope(self, make_session, fake_tool) -> None:
        outcome = await PackageInstaller(make_session()).install_package("npm:demo@1.0.0", Scope.PROJECT)
        assert outcome.scope is Scope.PROJECT
        assert fake_tool.tool_calls("install") == [["install", "-l", "npm:demo@1.0.0"]]
        assert fake_tool.installed[Scope.PROJECT] == ["npm:demo@1.0.0"]

    @pytest.mark.asyncio
    async def test_prompted_scope_and_confirmation(self, make_session, fake_tool) -> None:
        prompter = ScriptedPrompter(selection=SCOPE_OPTIONS[1])
        outcome = await PackageInstaller(make_session(prompter)).install_package("git@github.com:u/r")

        assert outcome.scope is Scope.PROJECT
        assert prompter.selects == [("Install scope", SCOPE_OPTIONS)]
        assert prompter.confirms == [("Install Package", "Install git:git@github.com:u/r (project)?")]
        assert fake_tool.tool_calls("install") == [["install", "-l", "git:git@github.com:u/r"]]

    @pytest.mark.asyncio
    async def test_cancel_at_scope_prompt(self, make_session, fake_tool) -> None:
        prompter = ScriptedPrompter(selection="Cancel")
        outcome = await PackageInstaller(make_session(prompter)).install_package("demo")
        assert outcome.status is InstallStatus.CANCELLED
        assert outcome.scope is None
        assert fake_tool.tool_calls("install") == []

    @pytest.mark.asyncio
    async def test_declined_confirmation(self, make_session, fake_tool) -> None:
        prompter = ScriptedPrompter(selection=SCOPE_OPTIONS[0], confirm=False)
        session = make_session(prompter)
        outcome = await PackageInstaller(session).install_package("demo")
        assert outcome.status is InstallStatus.CANCELLED
        assert fake_tool.tool_calls("install") == []
        assert session.history.entries() == []

    @pytest.mark.asyncio
    async def test_explicit_scope_skips_scope_prompt(self, make_session) -> None:
        prompter = ScriptedPrompter()
        await PackageInstaller(make_session(prompter)).install_package("demo", Scope.GLOBAL)
        assert prompter.selects == []
        assert len(prompter.confirms) == 1

    @pytest.mark.asyncio
    async def test_failure_raises_and_is_recorded(self, make_session, fake_tool) -> None:
        fake_tool.failures[("install", Scope.GLOBAL)] = CommandResult(1, stderr="E404 not found\n")
        session = make_session()

        with pytest.raises(ExternalCommandError) as exc_info:
            await PackageInstaller(session).install_package("npm:ghost")

        assert str(exc_info.value) == "Install failed: E404 not found"
        assert exc_info.value.argv == ["pi", "install", "npm:ghost"]
        assert exc_info.value.exit_code == 4
        (entry,) = session.history.entries()
        assert entry.success is False
        assert "E404" in entry.error

    @pytest.mark.asyncio
    async def test_install_is_not_retried(self, make_session, fake_tool) -> None:
        fake_tool.failures[("install", Scope.GLOBAL)] = CommandResult(1, stderr="flaky")
        with pytest.raises(ExternalCommandError):
            await PackageInstaller(make_session()).install_package("npm:demo")
        assert len(fake_tool.tool_calls("install")) == 1

    @pytest.mark.asyncio
    async def test_not_visible_in_time_is_a_warning(self, make_session, fake_tool, fast_config) -> None:
        fake_tool.hidden.add("npm:demo")
        outcome = await PackageInstaller(make_session()).install_package("npm:demo")

        assert outcome.status is InstallStatus.INSTALLED
        assert isinstance(outcome.warning, VisibilityTimeoutError)
        assert outcome.warning.attempts == fast_config.polling.max_attempts
        assert len(fake_tool.tool_calls("list")) == fast_config.polling.max_attempts

    @pytest.mark.asyncio
    async def test_custom_tool(self, make_session, fake_tool) -> None:
        session = make_session()
        session.config.tool = "othertool"
        with pytest.raises(ExternalCommandError):
            await PackageInstaller(session).install_package("npm:demo")
        assert fake_tool.calls[0][0] == "othertool"


# ---------------------------------------------------------------------------
# Single-file downloads
# ---------------------------------------------------------------------------


class TestInstallFromUrl:
    @pytest.mark.asyncio
    async def test_blob_link_downloads_raw_file(self, make_session, fake_tool, isolated_config) -> None:
        seen: list[str] = []
        session = make_session()
        installer = PackageInstaller(session, transport=_transport(seen=seen))

        outcome = await installer.install_package(BLOB_URL)

        dest = isolated_config / "agent" / "extensions" / "hello.ts"
        assert outcome.status is InstallStatus.INSTALLED
        assert outcome.path == dest
        assert dest.read_text(encoding="utf-8") == "// hello\n"
        assert seen == [RAW_URL]
        assert fake_tool.tool_calls("install") == []
        (entry,) = session.history.entries()
        assert entry.package_name == "hello.ts"
        assert entry.success is True

    @pytest.mark.asyncio
    async def test_project_download(self, make_session, isolated_config) -> None:
        installer = PackageInstaller(make_session(), transport=_transport())
        outcome = await installer.install_package(RAW_URL, Scope.PROJECT)
        assert outcome.path == isolated_config / "project" / ".pi" / "extensions" / "hello.ts"
        assert outcome.path.is_file()

    @pytest.mark.asyncio
    async def test_confirmation_message(self, make_session) -> None:
        prompter = ScriptedPrompter(confirm=False)
        installer = PackageInstaller(make_session(prompter), transport=_transport())
        outcome = await installer.install_package(RAW_URL, Scope.GLOBAL)
        assert outcome.status is InstallStatus.CANCELLED
        assert prompter.confirms == [("Install from URL", "Download hello.ts to global extensions?")]

    @pytest.mark.asyncio
    async def test_http_error(self, make_session, isolated_config) -> None:
        session = make_session()
        installer = PackageInstaller(session, transport=_transport(status=404, body="Not Found"))

        with pytest.raises(DownloadError) as exc_info:
            await installer.install_package(BLOB_URL)

        assert "HTTP 404" in str(exc_info.value)
        assert not (isolated_config / "agent" / "extensions" / "hello.ts").exists()
        (entry,) = session.history.entries()
        assert entry.success is False
        assert entry.error == "HTTP 404"

    @pytest.mark.asyncio
    async def test_connection_error(self, make_session) -> None:
        def _refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        installer = PackageInstaller(make_session(), transport=httpx.MockTransport(_refuse))
        with pytest.raises(DownloadError, match="connection refused"):
            await installer.install_package(RAW_URL)
