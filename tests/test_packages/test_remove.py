"""Tests for PackageRemover -- identity matching, scope selection, and reporting."""

from __future__ import annotations

import pytest

from conftest import ScriptedPrompter

from extmgr.exceptions import InvalidUsageError
from extmgr.models import ChangeAction, InstalledPackage, Scope
from extmgr.packages import PackageRemover, RemovalTarget
from extmgr.packages.remove import SCOPE_OPTIONS, build_removal_targets, scope_choice_from_label
from extmgr.runner import CommandResult


def _pkg(source: str, scope: Scope) -> InstalledPackage:
    return InstalledPackage(source=source, name="demo", scope=scope)


# ---------------------------------------------------------------------------
# Target selection
# ---------------------------------------------------------------------------


class TestBuildRemovalTargets:
    def test_nothing_listed_tries_global(self) -> None:
        assert build_removal_targets([], "npm:ghost", False, "both") == [
            RemovalTarget(Scope.GLOBAL, "npm:ghost", "npm:ghost")
        ]

    @pytest.mark.parametrize(
        ("choice", "scopes"),
        [
            ("both", [Scope.GLOBAL, Scope.PROJECT]),
            ("global", [Scope.GLOBAL]),
            ("project", [Scope.PROJECT]),
            ("cancel", []),
        ],
    )
    def test_both_scopes(self, choice: str, scopes: list) -> None:
        matching = [_pkg("npm:demo@2", Scope.PROJECT), _pkg("npm:demo@1", Scope.GLOBAL)]
        targets = build_removal_targets(matching, "demo", True, choice)
        assert [t.scope for t in targets] == scopes

    def test_listed_source_is_used(self) -> None:
        targets = build_removal_targets([_pkg("npm:demo@1.0.0", Scope.PROJECT)], "demo", False, "both")
        assert targets == [RemovalTarget(Scope.PROJECT, "npm:demo@1.0.0", "demo")]

    def test_without_ui_only_first_match(self) -> None:
        matching = [_pkg("npm:demo@1", Scope.GLOBAL), _pkg("npm:demo@2", Scope.GLOBAL)]
        assert len(build_removal_targets(matching, "demo", False, "both")) == 1
        assert len(build_removal_targets(matching, "demo", True, "both")) == 2

    @pytest.mark.parametrize(
        ("label", "choice"),
        [
            (SCOPE_OPTIONS[0], "both"),
            (SCOPE_OPTIONS[1], "global"),
            (SCOPE_OPTIONS[2], "project"),
            ("Cancel", "cancel"),
            (None, "cancel"),
            ("something else", "cancel"),
        ],
    )
    def test_scope_choice_from_label(self, label, choice: str) -> None:
        assert scope_choice_from_label(label) == choice


# ---------------------------------------------------------------------------
# remove_package
# ---------------------------------------------------------------------------


class TestRemovePackage:
    @pytest.mark.asyncio
    async def test_removes_by_identity(self, make_session, fake_tool) -> None:
        fake_tool.add("npm:demo@1.0.0")
        session = make_session()

        outcome = await PackageRemover(session).remove_package("demo")

        assert outcome.ok
        assert outcome.changed == 1
        assert outcome.remaining_scopes == []
        assert outcome.warning is None
        assert fake_tool.tool_calls("remove") == [["remove", "npm:demo@1.0.0"]]
        (entry,) = session.history.entries()
        assert entry.action is ChangeAction.PACKAGE_REMOVE
        assert entry.success is True

    @pytest.mark.asyncio
    async def test_project_target_uses_local_flag(self, make_session, fake_tool) -> None:
        fake_tool.add("./vendor/ext", Scope.PROJECT)
        outcome = await PackageRemover(make_session()).remove_package("./vendor/ext/")
        assert outcome.changed == 1
        assert fake_tool.tool_calls("remove") == [["remove", "-l", "./vendor/ext"]]

    @pytest.mark.asyncio
    async def test_not_listed_reports_error(self, make_session, fake_tool) -> None:
        outcome = await PackageRemover(make_session()).remove_package("npm:ghost")
        assert outcome.changed == 0
        assert outcome.errors == ["Remove failed (global): npm:ghost is not installed"]
        assert not outcome.ok

    @pytest.mark.asyncio
    async def test_both_scopes_without_ui_default_to_global(self, make_session, fake_tool) -> None:
        fake_tool.add("npm:demo@1.0.0", Scope.GLOBAL)
        fake_tool.add("npm:demo@2.0.0", Scope.PROJECT)

        outcome = await PackageRemover(make_session()).remove_package("npm:demo")

        assert fake_tool.tool_calls("remove") == [["remove", "npm:demo@1.0.0"]]
        assert outcome.remaining_scopes == [Scope.PROJECT]

    @pytest.mark.asyncio
    async def test_both_scopes_explicit_choice(self, make_session, fake_tool) -> None:
        fake_tool.add("npm:demo", Scope.GLOBAL)
        fake_tool.add("npm:demo", Scope.PROJECT)

        outcome = await PackageRemover(make_session()).remove_package("npm:demo", "both")

        assert fake_tool.tool_calls("remove") == [["remove", "npm:demo"], ["remove", "-l", "npm:demo"]]
        assert outcome.changed == 2
        assert outcome.remaining_scopes == []

    @pytest.mark.asyncio
    async def test_choice_ignored_for_single_scope(self, make_session, fake_tool) -> None:
        fake_tool.add("npm:demo", Scope.GLOBAL)
        outcome = await PackageRemover(make_session()).remove_package("npm:demo", "project")
        assert fake_tool.tool_calls("remove") == [["remove", "npm:demo"]]
        assert outcome.changed == 1

    @pytest.mark.asyncio
    async def test_prompted_scope(self, make_session, fake_tool) -> None:
        fake_tool.add("npm:demo", Scope.GLOBAL)
        fake_tool.add("npm:demo", Scope.PROJECT)
        prompter = ScriptedPrompter(selection="Project only")

        outcome = await PackageRemover(make_session(prompter)).remove_package("npm:demo")

        assert prompter.selects == [("Remove scope", SCOPE_OPTIONS)]
        assert prompter.confirms == [("Remove Package", "Remove:\nproject: npm:demo?")]
        assert fake_tool.tool_calls("remove") == [["remove", "-l", "npm:demo"]]
        assert outcome.remaining_scopes == [Scope.GLOBAL]

    @pytest.mark.asyncio
    async def test_cancelled_at_scope_prompt(self, make_session, fake_tool) -> None:
        fake_tool.add("npm:demo", Scope.GLOBAL)
        fake_tool.add("npm:demo", Scope.PROJECT)
        outcome = await PackageRemover(make_session(ScriptedPrompter(selection="Cancel"))).remove_package("npm:demo")
        assert outcome.cancelled
        assert not outcome.ok
        assert fake_tool.tool_calls("remove") == []

    @pytest.mark.asyncio
    async def test_declined_confirmation(self, make_session, fake_tool) -> None:
        fake_tool.add("npm:demo")
        session = make_session(ScriptedPrompter(confirm=False))
        outcome = await PackageRemover(session).remove_package("npm:demo")
        assert outcome.cancelled
        assert fake_tool.tool_calls("remove") == []
        assert session.history.entries() == []

    @pytest.mark.asyncio
    async def test_invalid_choice(self, make_session) -> None:
        with pytest.raises(InvalidUsageError):
            await PackageRemover(make_session()).remove_package("npm:demo", "everywhere")

    @pytest.mark.asyncio
    async def test_partial_failure(self, make_session, fake_tool) -> None:
        fake_tool.add("npm:demo", Scope.GLOBAL)
        fake_tool.add("npm:demo", Scope.PROJECT)
        fake_tool.failures[("remove", Scope.PROJECT)] = CommandResult(1, stderr="EBUSY: locked")
        session = make_session()

        outcome = await PackageRemover(session).remove_package("npm:demo", "both")

        assert outcome.changed == 1
        assert outcome.errors == ["Remove failed (project): EBUSY: locked"]
        assert outcome.remaining_scopes == [Scope.PROJECT]
        assert outcome.warning is None
        assert [e.success for e in session.history.entries()] == [True, False]

    @pytest.mark.asyncio
    async def test_still_listed_after_removal_is_a_warning(self, make_session, fake_tool) -> None:
        fake_tool.add("npm:demo")
        fake_tool.sticky.add("npm:demo")

        outcome = await PackageRemover(make_session()).remove_package("npm:demo")

        assert outcome.changed == 1
        assert outcome.warning is not None
        assert outcome.remaining_scopes == [Scope.GLOBAL]

    @pytest.mark.asyncio
    async def test_listing_failure_still_attempts_removal(self, make_session, fake_tool) -> None:
        fake_tool.add("npm:demo")
        fake_tool.list_fails = True
        outcome = await PackageRemover(make_session()).remove_package("npm:demo")
        assert fake_tool.tool_calls("remove") == [["remove", "npm:demo"]]
        assert outcome.changed == 1
