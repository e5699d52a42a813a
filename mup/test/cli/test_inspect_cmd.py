from __future__ import annotations

from pathlib import Path

import pytest
import typer

from mup.cli.context import CLIContext
from mup.core.config import Config, InstanceConfig, RepositoryConfig
from mup.core.result import Err, Ok, Result
from mup.git.remotes import RemoteEntry
from mup.git.repository import GitError
from mup.output.console import MockConsole


class _Repo:
    def __init__(self, path: Path, *, tags: Result[list[str], GitError]) -> None:
        self.path = path
        self._tags = tags

    def exists(self) -> bool:
        return True

    def remotes(self) -> Result[list[RemoteEntry], GitError]:
        return Ok(
            [
                RemoteEntry("origin", "git@github.com:memento/mastodon.git", "fetch"),
                RemoteEntry("upstream", "https://github.com/mastodon/mastodon.git", "fetch"),
            ]
        )

    def fetch_all(self) -> Result[None, GitError]:
        return Ok(None)

    def tags(self, pattern: str = "v*") -> Result[list[str], GitError]:
        return self._tags

    def remote_branches(self) -> Result[list[str], GitError]:
        return Ok(["origin/mementomods-2025-08-24", "origin/mementomods-2025-07-01"])


def _install(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    *,
    fork: str = "memento/mastodon",
    tags: Result[list[str], GitError] | None = None,
) -> MockConsole:
    import mup.cli.commands.inspect_cmd as inspect_cmd

    console = MockConsole()
    config = Config(
        instance=InstanceConfig(dir=str(tmp_path)),
        repository=RepositoryConfig(fork=fork),
    )

    def fake_build_context() -> CLIContext:
        return CLIContext(config=config, config_path=None, console=console)

    repo = _Repo(tmp_path, tags=tags if tags is not None else Ok(["v4.4.3", "v4.5.0-rc1"]))
    monkeypatch.setattr(inspect_cmd, "build_context", fake_build_context)
    monkeypatch.setattr(inspect_cmd, "Repository", lambda _path: repo)
    return console


def test_remotes_reports_roles(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import mup.cli.commands.inspect_cmd as inspect_cmd

    console = _install(monkeypatch, tmp_path)

    inspect_cmd.remotes()

    assert "OK fork: origin" in console.messages
    assert "OK upstream: upstream" in console.messages


def test_remotes_without_fork_fails(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import mup.cli.commands.inspect_cmd as inspect_cmd

    console = _install(monkeypatch, tmp_path, fork="")

    with pytest.raises(typer.Exit) as exc:
        inspect_cmd.remotes()

    assert exc.value.exit_code == 2
    assert console.find("fork: no remote matches '(unset)'")


def test_latest_shows_stable_and_branch(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import mup.cli.commands.inspect_cmd as inspect_cmd

    console = _install(monkeypatch, tmp_path)

    inspect_cmd.latest(fetch=True)

    assert "OK stable: v4.4.3" in console.messages
    assert "OK branch: mementomods-2025-08-24" in console.messages


def test_latest_tag_listing_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import mup.cli.commands.inspect_cmd as inspect_cmd

    console = _install(monkeypatch, tmp_path, tags=Err(GitError("tag", "broken")))

    with pytest.raises(typer.Exit) as exc:
        inspect_cmd.latest(fetch=False)

    assert exc.value.exit_code == 2
    assert "error: broken" in console.messages
