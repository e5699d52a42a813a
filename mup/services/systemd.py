"""systemd service management for the instance's units."""

from __future__ import annotations

import shutil
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from mup.core.config import ServicesConfig
from mup.core.result import Err, Ok, Result
from mup.output.console import ConsoleProtocol
from mup.platform.process import ProcessError
from mup.platform.process import run as run_process
from mup.platform.process import watch as watch_process

__all__ = [
    "RestartPlan",
    "ServiceManager",
    "SystemdManager",
    "parse_unit_list",
    "plan_restart",
]

_SYSTEMCTL_TIMEOUT_SECONDS = 120.0


@dataclass(frozen=True, slots=True)
class RestartPlan:
    """Units in restart order: workers, then edge-facing units, then the rest."""

    workers: tuple[str, ...]
    edge: tuple[str, ...]
    after: tuple[str, ...] = ()

    @property
    def ordered(self) -> tuple[str, ...]:
        return (*self.workers, *self.edge, *self.after)


class ServiceManager(Protocol):
    def is_active(self, unit: str) -> bool: ...

    def list_units(self, prefix: str) -> Result[list[str], ProcessError]: ...

    def start(self, units: Sequence[str]) -> Result[None, ProcessError]: ...

    def restart(self, units: Sequence[str]) -> Result[None, ProcessError]: ...

    def helper_available(self, name: str) -> bool: ...

    def run_helper(self, name: str) -> Result[None, ProcessError]: ...

    def watch_journal(self, unit: str, seconds: float) -> Result[str, ProcessError]: ...


def parse_unit_list(output: str, prefix: str) -> list[str]:
    """Unit names from ``systemctl list-units --no-legend`` that start with ``prefix``.

    Failed units are printed with a leading bullet, which is skipped.
    """
    units: list[str] = []
    for line in output.splitlines():
        tokens = [t for t in line.split() if t not in {"●", "*"}]
        if not tokens:
            continue
        unit = tokens[0]
        if unit.startswith(prefix) and unit not in units:
            units.append(unit)
    return units


def _base_name(unit: str) -> str:
    return unit.removesuffix(".service")


def plan_restart(config: ServicesConfig, discovered_workers: Sequence[str]) -> RestartPlan:
    """Order units so background workers come up before web and streaming.

    The plain worker unit (exactly the prefix) goes first, the numbered and
    queue-specific instances follow in discovery order. Without discovery the
    prefix itself is used.
    """
    workers = list(discovered_workers) or [config.worker_prefix]
    base = [u for u in workers if _base_name(u) == config.worker_prefix]
    rest = [u for u in workers if _base_name(u) != config.worker_prefix]
    return RestartPlan(
        workers=(*base, *rest),
        edge=(config.streaming, config.web),
        after=tuple(config.after),
    )


class SystemdManager:
    def __init__(self, *, config: ServicesConfig, console: ConsoleProtocol, cwd: Path) -> None:
        self._config = config
        self._console = console
        self._cwd = cwd

    def _privileged(self, argv: list[str]) -> list[str]:
        return ["sudo", *argv] if self._config.use_sudo else argv

    def is_active(self, unit: str) -> bool:
        result = run_process(
            ["systemctl", "is-active", "--quiet", unit],
            cwd=self._cwd,
            timeout=_SYSTEMCTL_TIMEOUT_SECONDS,
        )
        return isinstance(result, Ok)

    def list_units(self, prefix: str) -> Result[list[str], ProcessError]:
        result = run_process(
            ["systemctl", "list-units", "--all", "--type=service", "--no-legend", "--plain"],
            cwd=self._cwd,
            timeout=_SYSTEMCTL_TIMEOUT_SECONDS,
        )
        return result.map(lambda out: parse_unit_list(out, prefix))

    def start(self, units: Sequence[str]) -> Result[None, ProcessError]:
        return self._systemctl("start", units)

    def restart(self, units: Sequence[str]) -> Result[None, ProcessError]:
        return self._systemctl("restart", units)

    def helper_available(self, name: str) -> bool:
        return shutil.which(name) is not None

    def run_helper(self, name: str) -> Result[None, ProcessError]:
        argv = [name]
        self._console.command(argv)
        return run_process(argv, cwd=self._cwd).map(lambda _: None)

    def watch_journal(self, unit: str, seconds: float) -> Result[str, ProcessError]:
        argv = self._privileged(["journalctl", "-u", unit, "-f", "-n", "0", "--no-pager"])
        self._console.command(argv)
        return watch_process(argv, cwd=self._cwd, seconds=seconds)

    def _systemctl(self, verb: str, units: Sequence[str]) -> Result[None, ProcessError]:
        if not units:
            return Ok(None)
        argv = self._privileged(["systemctl", verb, *units])
        self._console.command(argv)
        result = run_process(argv, cwd=self._cwd, timeout=_SYSTEMCTL_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return result
        return Ok(None)
