"""Tests for extmgr.history -- the append-only change log."""

from __future__ import annotations

from pathlib import Path

import pytest

from extmgr.history import ChangeHistory
from extmgr.models import ChangeAction, Scope, State


@pytest.fixture
def history(tmp_path: Path) -> ChangeHistory:
    return ChangeHistory(tmp_path / "data" / "history.jsonl", max_entries=50)


class TestRecord:
    def test_empty(self, history: ChangeHistory) -> None:
        assert history.entries() == []
        assert history.query() == []

    def test_toggle_entry(self, history: ChangeHistory) -> None:
        history.log_extension_toggle(
            "npm:demo", "ext:global:npm:demo:a.ts", Scope.GLOBAL, State.ENABLED, State.DISABLED, True
        )
        (entry,) = history.entries()
        assert entry.action is ChangeAction.EXTENSION_TOGGLE
        assert entry.scope is Scope.GLOBAL
        assert entry.from_state is State.ENABLED
        assert entry.to_state is State.DISABLED
        assert entry.success is True
        assert entry.timestamp.tzinfo is not None

    def test_package_entry(self, history: ChangeHistory) -> None:
        history.log_package(
            ChangeAction.PACKAGE_INSTALL, "npm:demo", False, scope=Scope.PROJECT, error="boom"
        )
        (entry,) = history.entries()
        assert entry.action is ChangeAction.PACKAGE_INSTALL
        assert entry.error == "boom"
        assert entry.success is False

    def test_disabled_history_writes_nothing(self, tmp_path: Path) -> None:
        history = ChangeHistory(tmp_path / "h.jsonl", enabled=False)
        history.log_package(ChangeAction.PACKAGE_REMOVE, "npm:x", True)
        assert not (tmp_path / "h.jsonl").exists()

    def test_malformed_lines_are_skipped(self, history: ChangeHistory) -> None:
        history.log_package(ChangeAction.PACKAGE_UPDATE, "npm:a", True)
        with open(history.path, "a", encoding="utf-8") as fh:
            fh.write("not json\n\n")
        history.log_package(ChangeAction.PACKAGE_UPDATE, "npm:b", True)
        assert [e.source for e in history.entries()] == ["npm:a", "npm:b"]

    def test_trim_keeps_newest(self, tmp_path: Path) -> None:
        history = ChangeHistory(tmp_path / "h.jsonl", max_entries=3)
        for index in range(5):
            history.log_package(ChangeAction.PACKAGE_INSTALL, f"npm:p{index}", True)
        assert [e.source for e in history.entries()] == ["npm:p2", "npm:p3", "npm:p4"]

    def test_clear(self, history: ChangeHistory) -> None:
        history.log_package(ChangeAction.PACKAGE_INSTALL, "npm:a", True)
        history.clear()
        history.clear()
        assert history.entries() == []


class TestQuery:
    @pytest.fixture
    def populated(self, history: ChangeHistory) -> ChangeHistory:
        history.log_package(ChangeAction.PACKAGE_INSTALL, "npm:a", True)
        history.log_package(ChangeAction.PACKAGE_REMOVE, "npm:a", False, error="locked")
        history.log_package(ChangeAction.PACKAGE_INSTALL, "npm:b", True)
        history.log_package(ChangeAction.PACKAGE_UPDATE, "npm:b", True)
        return history

    def test_newest_first(self, populated: ChangeHistory) -> None:
        assert [e.action for e in populated.query()] == [
            ChangeAction.PACKAGE_UPDATE,
            ChangeAction.PACKAGE_INSTALL,
            ChangeAction.PACKAGE_REMOVE,
            ChangeAction.PACKAGE_INSTALL,
        ]

    def test_filters(self, populated: ChangeHistory) -> None:
        assert [e.source for e in populated.query(action=ChangeAction.PACKAGE_INSTALL)] == ["npm:b", "npm:a"]
        failed = populated.query(success=False)
        assert len(failed) == 1
        assert failed[0].error == "locked"

    def test_limit(self, populated: ChangeHistory) -> None:
        assert len(populated.query(limit=2)) == 2
