from __future__ import annotations

from mup.cli.commands._helpers import exit_on_abort, exit_with_code
from mup.cli.context import build_context, upgrade_context
from mup.core.errors import ErrorCode
from mup.core.result import Err
from mup.services.upgrade.engine import run_workflow
from mup.services.upgrade.model import WorkflowMode, initial_state
from mup.services.upgrade.steps import build_steps


def local() -> None:
    """Upgrade the development checkout and carry the customizations forward."""
    _run("development")


def production() -> None:
    """Deploy the newest customization branch to the live instance."""
    _run("production")


def _run(mode: WorkflowMode) -> None:
    ctx = build_context()
    upgrade = upgrade_context(ctx)
    try:
        result = run_workflow(upgrade, initial_state(mode), build_steps(mode))
    except KeyboardInterrupt:
        ctx.console.newline()
        ctx.console.warning("interrupted; the instance may be in an intermediate state")
        exit_with_code(ErrorCode.INTERRUPTED)

    if isinstance(result, Err):
        exit_on_abort(ctx.console, result.error)
