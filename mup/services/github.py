"""Fork synchronisation through the GitHub CLI (``gh``)."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Protocol

from mup.core.result import Result
from mup.output.console import ConsoleProtocol
from mup.platform.process import ProcessError
from mup.platform.process import run as run_process
from mup.platform.process import run_silent

__all__ = ["ForkSync", "GhCli", "GH_INSTALL_HINT"]

_GH_TIMEOUT_SECONDS = 5 * 60.0

GH_INSTALL_HINT = (
    "Install the GitHub CLI (https://github.com/cli/cli#installation), "
    "then authenticate with: gh auth login"
)


class ForkSync(Protocol):
    def available(self) -> bool: ...

    def authenticated(self) -> bool: ...

    def login(self) -> Result[None, ProcessError]: ...

    def sync(self, fork: str, upstream: str) -> Result[None, ProcessError]: ...


class GhCli:
    def __init__(self, *, console: ConsoleProtocol, cwd: Path) -> None:
        self._console = console
        self._cwd = cwd

    def available(self) -> bool:
        return shutil.which("gh") is not None

    def authenticated(self) -> bool:
        return run_process(["gh", "auth", "status"], cwd=self._cwd).is_ok()

    def login(self) -> Result[None, ProcessError]:
        argv = ["gh", "auth", "login"]
        self._console.command(argv)
        return run_silent(argv, cwd=self._cwd)

    def sync(self, fork: str, upstream: str) -> Result[None, ProcessError]:
        """Fast-forward the fork's default branch on GitHub from upstream."""
        argv = ["gh", "repo", "sync", fork, "--source", upstream]
        self._console.command(argv)
        return run_process(argv, cwd=self._cwd, timeout=_GH_TIMEOUT_SECONDS).map(lambda _: None)
