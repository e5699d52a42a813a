"""Subprocess execution with Result-based error handling.

This is the only module that talks to ``subprocess`` directly. Four shapes
of command show up during an upgrade:

- ``run``: short queries whose output is parsed (git, systemctl is-active).
- ``run_silent``: interactive commands attached to the terminal (gh auth).
- ``run_streaming``: long builds whose output the operator watches live.
- ``watch``: follow-style commands (``journalctl -f``) cut off after a while.

Usage:
    match run(["git", "remote", "-v"], cwd=Path("/home/mastodon/live")):
        case Ok(stdout):
            ...
        case Err(error):
            console.error(str(error))
"""

from __future__ import annotations

import os
import subprocess
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

from mup.core.result import Err, Ok, Result

__all__ = ["ProcessError", "merged_env", "run", "run_silent", "run_streaming", "watch"]

# Lines of streamed output kept for classifying a failure.
_TAIL_LINES = 40


@dataclass(frozen=True, slots=True)
class ProcessError:
    """A command that could not start, timed out or exited non-zero.

    ``returncode`` is -1 when the process never ran to completion.
    For streamed runs ``stdout`` holds only the last lines of output.
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    def __str__(self) -> str:
        shown = " ".join(self.command[:3])
        if len(self.command) > 3:
            shown += " ..."
        return f"{shown} failed (exit {self.returncode})"

    @property
    def output(self) -> str:
        """Combined stdout and stderr, for pattern matching on failures."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


def merged_env(extra: Mapping[str, str] | None) -> dict[str, str] | None:
    """Overlay ``extra`` (e.g. ``RAILS_ENV``) on the current environment."""
    if not extra:
        return None
    return {**os.environ, **extra}


def _text(data: str | bytes | None) -> str:
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data or ""


def _not_started(cmd: list[str], reason: str) -> Err[ProcessError]:
    return Err(ProcessError(command=tuple(cmd), returncode=-1, stdout="", stderr=reason))


def _finished(
    cmd: list[str], returncode: int, stdout: str, stderr: str = ""
) -> Result[str, ProcessError]:
    if returncode != 0:
        return Err(ProcessError(tuple(cmd), returncode, stdout, stderr))
    return Ok(stdout)


def run(
    cmd: list[str],
    cwd: Path,
    env: Mapping[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> Result[str, ProcessError]:
    """Run a command to completion and return its stdout.

    A timeout is reported as an error (returncode -1) with whatever stdout
    was produced before the command was killed.
    """
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd),
            env=merged_env(env),
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=-1,
                stdout=_text(e.stdout),
                stderr=f"Command timed out after {timeout}s",
            )
        )
    except OSError as e:
        return _not_started(cmd, str(e))

    return _finished(cmd, proc.returncode, proc.stdout, proc.stderr)


def run_silent(
    cmd: list[str],
    cwd: Path,
    env: Mapping[str, str] | None = None,
) -> Result[None, ProcessError]:
    """Run a command attached to the terminal; nothing is captured."""
    try:
        proc = subprocess.run(cmd, cwd=str(cwd), env=merged_env(env), check=False)
    except OSError as e:
        return _not_started(cmd, str(e))

    return _finished(cmd, proc.returncode, "").map(lambda _: None)


def run_streaming(
    cmd: list[str],
    cwd: Path,
    env: Mapping[str, str] | None = None,
    *,
    on_line: Callable[[str], None] | None = None,
) -> Result[str, ProcessError]:
    """Run a long command, handing each output line to ``on_line`` as it arrives.

    stderr is folded into stdout. Only the tail is kept, so that a failure
    can still be classified afterwards (e.g. the asset compiler's libvips
    message).
    """
    tail: deque[str] = deque(maxlen=_TAIL_LINES)
    try:
        proc = subprocess.Popen(
            cmd,
            cwd=str(cwd),
            env=merged_env(env),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
        )
    except OSError as e:
        return _not_started(cmd, str(e))

    assert proc.stdout is not None
    with proc.stdout:
        for raw in proc.stdout:
            line = raw.rstrip("\n")
            tail.append(line)
            if on_line is not None:
                on_line(line)

    return _finished(cmd, proc.wait(), "\n".join(tail))


def watch(
    cmd: list[str],
    cwd: Path,
    *,
    seconds: float,
) -> Result[str, ProcessError]:
    """Run a follow-style command for at most ``seconds``.

    Hitting the time limit is the normal way for this to end and yields Ok
    with whatever was captured.
    """
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd),
            capture_output=True,
            text=True,
            timeout=seconds,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        return Ok(_text(e.stdout))
    except OSError as e:
        return _not_started(cmd, str(e))

    return _finished(cmd, proc.returncode, proc.stdout, proc.stderr)
