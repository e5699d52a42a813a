"""Instance maintenance through ``bin/tootctl``: cache and search index."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from mup.core.result import Result
from mup.output.console import ConsoleProtocol, Style
from mup.platform.process import ProcessError, run_streaming

__all__ = ["Tootctl", "TootctlCli"]


class Tootctl(Protocol):
    def clear_cache(self) -> Result[None, ProcessError]: ...

    def reset_search(self) -> Result[None, ProcessError]: ...

    def deploy_search(
        self, entity: str, *, concurrency: int, batch_size: int
    ) -> Result[None, ProcessError]: ...


class TootctlCli:
    def __init__(self, *, instance_dir: Path, rails_env: str, console: ConsoleProtocol) -> None:
        self._dir = instance_dir
        self._env = {"RAILS_ENV": rails_env}
        self._console = console

    def clear_cache(self) -> Result[None, ProcessError]:
        return self._tootctl("cache", "clear")

    def reset_search(self) -> Result[None, ProcessError]:
        return self._tootctl("search", "deploy", "--reset-chewy")

    def deploy_search(
        self, entity: str, *, concurrency: int, batch_size: int
    ) -> Result[None, ProcessError]:
        return self._tootctl(
            "search",
            "deploy",
            "--only",
            entity,
            "--concurrency",
            str(concurrency),
            "--batch_size",
            str(batch_size),
        )

    def _tootctl(self, *args: str) -> Result[None, ProcessError]:
        argv = [str(self._dir / "bin" / "tootctl"), *args]
        self._console.command(["bin/tootctl", *args])
        result = run_streaming(
            argv,
            cwd=self._dir,
            env=self._env,
            on_line=lambda line: self._console.print(line, Style.DIM),
        )
        return result.map(lambda _: None)
