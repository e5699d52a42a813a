"""Tests for the gh and tootctl command wrappers."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from mup.core.result import Ok, Result
from mup.output.console import MockConsole
from mup.platform.process import ProcessError
from mup.services import github, tootctl
from mup.services.github import GhCli
from mup.services.tootctl import TootctlCli


def test_gh_sync_names_fork_and_source(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[list[str]] = []

    def fake_run(
        cmd: list[str],
        cwd: Path,
        env: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> Result[str, ProcessError]:
        seen.append(cmd)
        return Ok("")

    monkeypatch.setattr(github, "run_process", fake_run)
    gh = GhCli(console=MockConsole(), cwd=tmp_path)

    assert isinstance(gh.sync("memento/mastodon", "mastodon/mastodon"), Ok)
    assert seen == [["gh", "repo", "sync", "memento/mastodon", "--source", "mastodon/mastodon"]]


def test_gh_unavailable_without_binary(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(github.shutil, "which", lambda _: None)

    assert GhCli(console=MockConsole(), cwd=tmp_path).available() is False


def test_tootctl_search_deploy_arguments(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
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
        return Ok("")

    monkeypatch.setattr(tootctl, "run_streaming", fake_streaming)
    console = MockConsole()
    cli = TootctlCli(instance_dir=tmp_path, rails_env="production", console=console)

    cli.deploy_search("statuses", concurrency=16, batch_size=4096)

    assert seen["cmd"] == [
        str(tmp_path / "bin" / "tootctl"),
        "search",
        "deploy",
        "--only",
        "statuses",
        "--concurrency",
        "16",
        "--batch_size",
        "4096",
    ]
    assert seen["env"] == {"RAILS_ENV": "production"}
    assert console.commands[0].startswith("bin/tootctl search deploy --only statuses")
