from __future__ import annotations

from pathlib import Path

import pytest
import typer

from mup.cli.context import CLIContext
from mup.core.config import Config
from mup.core.result import Err, Ok, Result
from mup.output.console import MockConsole
from mup.services.upgrade.engine import StepDef, WorkflowAbort
from mup.services.upgrade.errors import aborted, cancelled
from mup.services.upgrade.model import WorkflowState


def _install(
    monkeypatch: pytest.MonkeyPatch,
    outcome: Result[WorkflowState, WorkflowAbort] | BaseException,
) -> tuple[MockConsole, list[WorkflowState]]:
    import mup.cli.commands.upgrade as upgrade_cmd

    console = MockConsole()
    started: list[WorkflowState] = []

    def fake_build_context() -> CLIContext:
        return CLIContext(config=Config(), config_path=None, console=console)

    def fake_upgrade_context(_ctx: CLIContext) -> object:
        return object()

    def fake_run_workflow(
        _ctx: object, initial: WorkflowState, _steps: dict[str, StepDef]
    ) -> Result[WorkflowState, WorkflowAbort]:
        started.append(initial)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    monkeypatch.setattr(upgrade_cmd, "build_context", fake_build_context)
    monkeypatch.setattr(upgrade_cmd, "upgrade_context", fake_upgrade_context)
    monkeypatch.setattr(upgrade_cmd, "run_workflow", fake_run_workflow)
    return console, started


def _state(step: str = "complete", history: tuple[str, ...] = ()) -> WorkflowState:
    return WorkflowState(mode="development", step=step, history=history)  # type: ignore[arg-type]


def test_local_runs_development_workflow(monkeypatch: pytest.MonkeyPatch) -> None:
    import mup.cli.commands.upgrade as upgrade_cmd

    console, started = _install(monkeypatch, Ok(_state()))

    upgrade_cmd.local()

    assert [s.mode for s in started] == ["development"]
    assert started[0].step == "preflight"
    assert not console.has_error()


def test_production_runs_production_workflow(monkeypatch: pytest.MonkeyPatch) -> None:
    import mup.cli.commands.upgrade as upgrade_cmd

    _, started = _install(monkeypatch, Ok(_state()))

    upgrade_cmd.production()

    assert started[0].mode == "production"


def test_cancelled_exits_zero(monkeypatch: pytest.MonkeyPatch) -> None:
    import mup.cli.commands.upgrade as upgrade_cmd

    abort = WorkflowAbort(error=cancelled(), state=_state("aborted", ("select_branch",)))
    console, _ = _install(monkeypatch, Err(abort))

    with pytest.raises(typer.Exit) as exc:
        upgrade_cmd.production()

    assert exc.value.exit_code == 0
    assert console.find("upgrade cancelled")
    assert not console.has_error()


def test_abort_reports_error_hint_and_step(monkeypatch: pytest.MonkeyPatch) -> None:
    import mup.cli.commands.upgrade as upgrade_cmd

    error = aborted("migrations declined", hint="run them by hand")
    abort = WorkflowAbort(error=error, state=_state("aborted", ("build", "apply_migrations")))
    console, _ = _install(monkeypatch, Err(abort))

    with pytest.raises(typer.Exit) as exc:
        upgrade_cmd.local()

    assert exc.value.exit_code == 1
    assert console.messages[-3:] == [
        "error: migrations declined",
        "hint: run them by hand",
        "stopped during: apply_migrations",
    ]


def test_interrupt_exits_130(monkeypatch: pytest.MonkeyPatch) -> None:
    import mup.cli.commands.upgrade as upgrade_cmd

    console, _ = _install(monkeypatch, KeyboardInterrupt())

    with pytest.raises(typer.Exit) as exc:
        upgrade_cmd.local()

    assert exc.value.exit_code == 130
    assert console.has_warning()


def test_build_context_rejects_broken_config(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    from mup.cli.context import build_context

    path = tmp_path / "mup.toml"
    path.write_text("[instance\n", encoding="utf-8")
    monkeypatch.setenv("MUP_CONFIG", str(path))

    with pytest.raises(typer.Exit) as exc:
        build_context()

    assert exc.value.exit_code == 2
