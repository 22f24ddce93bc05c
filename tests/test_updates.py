"""Tests for extmgr.updates -- npm update availability."""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeTool

from extmgr.models import InstalledPackage, Scope
from extmgr.runner import CommandResult
from extmgr.scheduler import Scheduler
from extmgr.updates import UpdateWatcher, check_for_updates, latest_npm_version


def _pkg(source: str, version, scope: Scope = Scope.GLOBAL) -> InstalledPackage:
    return InstalledPackage(source=source, name=source.split(":")[-1].split("@")[0], scope=scope, version=version)


class TestLatestVersion:
    @pytest.mark.asyncio
    async def test_json_string(self) -> None:
        tool = FakeTool()
        tool.npm_versions["demo"] = "2.0.0"
        assert await latest_npm_version("demo", tool) == "2.0.0"
        assert tool.calls == [("npm", ["view", "demo", "version", "--json"])]

    @pytest.mark.asyncio
    async def test_failure_is_unknown(self) -> None:
        assert await latest_npm_version("ghost", FakeTool()) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("stdout", "expected"),
        [
            ('["1.0.0", "1.1.0"]', "1.1.0"),
            ("[]", None),
            ("not json", None),
            ('""', None),
            ("3", None),
        ],
    )
    async def test_output_shapes(self, stdout: str, expected) -> None:
        class _Runner:
            async def run(self, command, args, timeout, cwd=None):
                return CommandResult(0, stdout=stdout)

        assert await latest_npm_version("demo", _Runner()) == expected


class TestCheckForUpdates:
    @pytest.mark.asyncio
    async def test_reports_changed_versions_only(self) -> None:
        tool = FakeTool()
        tool.npm_versions.update({"a": "2.0.0", "b": "1.0.0"})
        packages = [
            _pkg("npm:a@1.0.0", "1.0.0"),
            _pkg("npm:b@1.0.0", "1.0.0", Scope.PROJECT),
            _pkg("npm:c", None),
            _pkg("git:github.com/u/r", None),
        ]
        updates = await check_for_updates(packages, tool)
        assert len(updates) == 1
        assert updates[0].name == "a"
        assert updates[0].installed == "1.0.0"
        assert updates[0].latest == "2.0.0"
        assert [args[1] for command, args in tool.calls] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_lookup_failure_is_skipped(self) -> None:
        updates = await check_for_updates([_pkg("npm:ghost@1.0.0", "1.0.0")], FakeTool())
        assert updates == []


class TestUpdateWatcher:
    @staticmethod
    def _watcher(tool: FakeTool, packages: list) -> UpdateWatcher:
        async def _list() -> list:
            return list(packages)

        return UpdateWatcher(_list, tool)

    @pytest.mark.asyncio
    async def test_each_version_is_reported_once(self) -> None:
        tool = FakeTool()
        tool.npm_versions["a"] = "2.0.0"
        watcher = self._watcher(tool, [_pkg("npm:a@1.0.0", "1.0.0")])

        first = await watcher.poll()
        assert [u.latest for u in first] == ["2.0.0"]
        assert await watcher.poll() == []

        tool.npm_versions["a"] = "3.0.0"
        assert [u.latest for u in await watcher.poll()] == ["3.0.0"]

    @pytest.mark.asyncio
    async def test_same_source_in_both_scopes_is_reported_per_scope(self) -> None:
        tool = FakeTool()
        tool.npm_versions["a"] = "2.0.0"
        watcher = self._watcher(
            tool, [_pkg("npm:a@1.0.0", "1.0.0"), _pkg("npm:a@1.0.0", "1.0.0", Scope.PROJECT)]
        )
        assert [u.scope for u in await watcher.poll()] == [Scope.GLOBAL, Scope.PROJECT]

    @pytest.mark.asyncio
    async def test_start_runs_checks_on_the_scheduler(self) -> None:
        tool = FakeTool()
        tool.npm_versions["a"] = "2.0.0"
        watcher = self._watcher(tool, [_pkg("npm:a@1.0.0", "1.0.0")])
        reported = []
        seen = asyncio.Event()

        def _on_updates(updates: list) -> None:
            reported.append(updates)
            seen.set()

        scheduler = Scheduler()
        watcher.start(scheduler, 0.01, _on_updates)
        try:
            await asyncio.wait_for(seen.wait(), timeout=2)
            await asyncio.sleep(0.05)
        finally:
            scheduler.stop()

        assert len(reported) == 1
        assert reported[0][0].name == "a"
        assert scheduler.is_running is False
