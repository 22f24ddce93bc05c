"""Tests for extmgr.listing -- parsing the package tool's list output."""

from __future__ import annotations

from extmgr.listing import packages_in_scope, parse_installed_packages
from extmgr.models import Scope


SAMPLE = """\
Global:
  npm:demo@1.0.0
    /home/me/.pi/agent/npm/node_modules/demo
  git:github.com/u/tools@v2 (pinned)
Project:
  ./vendor/local-ext
    /work/project/vendor/local-ext
"""


class TestParseInstalledPackages:
    def test_sample(self) -> None:
        packages = parse_installed_packages(SAMPLE)
        assert [(p.source, p.scope) for p in packages] == [
            ("npm:demo@1.0.0", Scope.GLOBAL),
            ("git:github.com/u/tools@v2", Scope.GLOBAL),
            ("./vendor/local-ext", Scope.PROJECT),
        ]

    def test_names_versions_and_paths(self) -> None:
        demo, tools, local = parse_installed_packages(SAMPLE)
        assert demo.name == "demo"
        assert demo.version == "1.0.0"
        assert demo.resolved_path == "/home/me/.pi/agent/npm/node_modules/demo"
        assert tools.name == "tools"
        assert tools.version is None
        assert tools.resolved_path is None
        assert local.name == "local-ext"
        assert local.resolved_path == "/work/project/vendor/local-ext"

    def test_empty_marker(self) -> None:
        assert parse_installed_packages("No packages installed.\n") == []

    def test_blank_output(self) -> None:
        assert parse_installed_packages("") == []

    def test_header_variants(self) -> None:
        output = "User packages:\n  npm:a\nProject packages:\n  npm:b\n"
        packages = parse_installed_packages(output)
        assert [(p.source, p.scope) for p in packages] == [
            ("npm:a", Scope.GLOBAL),
            ("npm:b", Scope.PROJECT),
        ]

    def test_unindented_noise_is_ignored(self) -> None:
        output = "Installed packages\nGlobal:\n  npm:a\n"
        assert [p.source for p in parse_installed_packages(output)] == ["npm:a"]

    def test_entries_before_any_header_are_global(self) -> None:
        packages = parse_installed_packages("  npm:a\n")
        assert packages[0].scope is Scope.GLOBAL

    def test_only_first_deeper_line_is_the_path(self) -> None:
        output = "Global:\n  npm:a\n    /p/a\n    /p/extra\n  npm:b\n"
        packages = parse_installed_packages(output)
        assert [(p.source, p.resolved_path) for p in packages] == [
            ("npm:a", "/p/a"),
            ("/p/extra", None),
            ("npm:b", None),
        ]


class TestPackagesInScope:
    def test_filter(self) -> None:
        packages = parse_installed_packages(SAMPLE)
        assert [p.name for p in packages_in_scope(packages, Scope.PROJECT)] == ["local-ext"]
        assert len(packages_in_scope(packages, Scope.GLOBAL)) == 2
