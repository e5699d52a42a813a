from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from mup.core.result import Err, Ok, Result
from mup.output.console import MockConsole
from mup.platform.process import ProcessError
from mup.services import toolchain
from mup.services.migrations import PendingMigration, parse_migration_status
from mup.services.toolchain import RailsToolchain, classify_build_output, parse_bundled_with

_LOCKFILE = """\
GEM
  remote: https://rubygems.org/
  specs:
    rake (13.2.1)

BUNDLED WITH
   2.6.9
"""


def test_classify_libvips_failure() -> None:
    output = "...\nIncompatible libvips version (8.12.1), please install >= 8.13\n"

    assert classify_build_output(output) == "libvips"


def test_classify_unknown_failure() -> None:
    assert classify_build_output("Webpacker compile failed") is None


def test_parse_bundled_with() -> None:
    assert parse_bundled_with(_LOCKFILE) == "2.6.9"
    assert parse_bundled_with("GEM\n") is None


def test_parse_migration_status_lists_down_rows() -> None:
    output = """\
database: mastodon_production

 Status   Migration ID    Migration Name
--------------------------------------------------
   up     20230724160715  Add fasp tables
  down    20250801120000  Add quote posts
  down    20250802090000
"""

    assert parse_migration_status(output) == [
        PendingMigration("20250801120000", "Add quote posts"),
        PendingMigration("20250802090000", ""),
    ]


class TestRailsToolchain:
    def test_required_ruby_reads_ruby_version(self, tmp_path: Path) -> None:
        (tmp_path / ".ruby-version").write_text("3.4.5\n", encoding="utf-8")
        tools = RailsToolchain(
            instance_dir=tmp_path, rails_env="production", console=MockConsole(), home=tmp_path
        )

        assert tools.required_ruby() == "3.4.5"

    def test_required_ruby_missing(self, tmp_path: Path) -> None:
        tools = RailsToolchain(
            instance_dir=tmp_path, rails_env="production", console=MockConsole(), home=tmp_path
        )

        assert tools.required_ruby() is None

    def test_precompile_failure_is_classified(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        seen: dict[str, object] = {}

        def fake_streaming(
            cmd: list[str],
            cwd: Path,
            env: dict[str, str] | None = None,
            *,
            on_line: Callable[[str], None] | None = None,
        ) -> Result[str, ProcessError]:
            seen["cmd"] = cmd
            seen["env"] = env
            return Err(
                ProcessError(tuple(cmd), 1, "Incompatible libvips version (8.12.1)", "")
            )

        monkeypatch.setattr(toolchain, "run_streaming", fake_streaming)
        console = MockConsole()
        tools = RailsToolchain(
            instance_dir=tmp_path, rails_env="production", console=console, home=tmp_path
        )

        result = tools.precompile()

        assert isinstance(result, Err)
        assert result.error.condition == "libvips"
        assert result.error.command == "bundle exec rails assets:precompile"
        assert seen["env"] == {"RAILS_ENV": "production"}
        assert console.commands == ["bundle exec rails assets:precompile"]

    def test_node_version_strips_prefix(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def fake_run(
            cmd: list[str],
            cwd: Path,
            env: dict[str, str] | None = None,
            *,
            timeout: float | None = None,
        ) -> Result[str, ProcessError]:
            return Ok("v22.18.0\n")

        monkeypatch.setattr(toolchain, "run_process", fake_run)
        tools = RailsToolchain(
            instance_dir=tmp_path, rails_env="production", console=MockConsole(), home=tmp_path
        )

        assert tools.node_version() == "22.18.0"
