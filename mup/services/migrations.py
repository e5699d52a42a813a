"""Database migrations through the rails tasks."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from mup.core.result import Err, Ok, Result
from mup.output.console import ConsoleProtocol, Style
from mup.platform.process import ProcessError
from mup.platform.process import run as run_process
from mup.platform.process import run_streaming

__all__ = [
    "MigrationTool",
    "PendingMigration",
    "RailsMigrations",
    "parse_migration_status",
]


@dataclass(frozen=True, slots=True)
class PendingMigration:
    version: str
    name: str

    def __str__(self) -> str:
        return f"{self.version}  {self.name}".rstrip()


def parse_migration_status(output: str) -> list[PendingMigration]:
    """Migrations reported as ``down`` by ``rails db:migrate:status``.

    Rows look like ``   down    20230724160715  Add fasp tables``.
    """
    pending: list[PendingMigration] = []
    for line in output.splitlines():
        parts = line.split(None, 2)
        if len(parts) < 2 or parts[0] != "down":
            continue
        name = parts[2].strip() if len(parts) == 3 else ""
        pending.append(PendingMigration(version=parts[1], name=name))
    return pending


class MigrationTool(Protocol):
    def pending(self) -> Result[list[PendingMigration], ProcessError]: ...

    def apply_all(self) -> Result[None, ProcessError]: ...

    def apply_one(self, version: str) -> Result[None, ProcessError]: ...


class RailsMigrations:
    def __init__(self, *, instance_dir: Path, rails_env: str, console: ConsoleProtocol) -> None:
        self._dir = instance_dir
        self._env = {"RAILS_ENV": rails_env}
        self._console = console

    def pending(self) -> Result[list[PendingMigration], ProcessError]:
        argv = ["bundle", "exec", "rails", "db:migrate:status"]
        self._console.command(argv)
        result = run_process(argv, cwd=self._dir, env=self._env)
        if isinstance(result, Err):
            return result
        return Ok(parse_migration_status(result.value))

    def apply_all(self) -> Result[None, ProcessError]:
        return self._stream(["bundle", "exec", "rails", "db:migrate"])

    def apply_one(self, version: str) -> Result[None, ProcessError]:
        return self._stream(["bundle", "exec", "rails", "db:migrate:up", f"VERSION={version}"])

    def _stream(self, argv: list[str]) -> Result[None, ProcessError]:
        self._console.command(argv)
        result = run_streaming(
            argv,
            cwd=self._dir,
            env=self._env,
            on_line=lambda line: self._console.print(line, Style.DIM),
        )
        return result.map(lambda _: None)
