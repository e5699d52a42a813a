"""Shared helpers for CLI commands."""

from __future__ import annotations

from typing import NoReturn

import typer

from mup.core.errors import ErrorCode
from mup.output.console import ConsoleProtocol, Style
from mup.services.upgrade.engine import WorkflowAbort


def exit_on_abort(console: ConsoleProtocol, abort: WorkflowAbort) -> NoReturn:
    """Report how an upgrade ended early and exit with the matching code.

    A cancelled run (the operator chose not to start) is not an error and
    exits 0.
    """
    error = abort.error
    if not error.exit_code.is_failure:
        console.info(error.message)
        raise typer.Exit(code=int(error.exit_code))

    console.error(error.message)
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)
    history = abort.state.history
    if history:
        console.print(f"stopped during: {history[-1]}", Style.DIM)
    raise typer.Exit(code=int(error.exit_code))


def exit_with_code(code: ErrorCode) -> NoReturn:
    raise typer.Exit(code=int(code))
