"""Table-driven upgrade state machine.

Each step is described by a StepDef. Unconditional steps run their handler
directly. Confirmation-gated steps ask the operator first and record the
answer in the state before anything else happens; a handler behind a gate
only ever runs after a recorded yes.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from mup.core.result import Err, Ok, Result
from mup.services.upgrade.errors import UpgradeError, aborted
from mup.services.upgrade.model import Step, WorkflowState

if TYPE_CHECKING:
    from mup.services.upgrade.context import UpgradeContext

Gate = Literal["unconditional", "confirm"]
OnDecline = Literal["skip", "abort"]
# A fixed question, or one worded from the state at the time it is asked.
Question = str | Callable[[WorkflowState], str]


@dataclass(frozen=True, slots=True)
class StepAdvance:
    state: WorkflowState


@dataclass(frozen=True, slots=True)
class StepFinish:
    pass


StepOutcome = StepAdvance | StepFinish
StepHandler = Callable[["UpgradeContext", WorkflowState], Result[StepOutcome, UpgradeError]]


FINISH = StepFinish()


def advance(state: WorkflowState) -> StepAdvance:
    return StepAdvance(state=state)


@dataclass(frozen=True, slots=True)
class StepDef:
    handler: StepHandler
    gate: Gate = "unconditional"
    question: Question | None = None
    on_decline: OnDecline = "skip"
    skip_to: Step | None = None
    decline_message: str | None = None


@dataclass(frozen=True, slots=True)
class WorkflowAbort:
    """How a run ended early: the error and the state it left behind."""

    error: UpgradeError
    state: WorkflowState


def _abort(state: WorkflowState, error: UpgradeError) -> Err[WorkflowAbort]:
    return Err(WorkflowAbort(error=error, state=state.failed(error)))


def run_workflow(
    ctx: UpgradeContext,
    initial: WorkflowState,
    steps: Mapping[Step, StepDef],
) -> Result[WorkflowState, WorkflowAbort]:
    current = initial

    while True:
        step = current.step
        definition = steps.get(step)
        if definition is None:
            return _abort(current, aborted(f"unknown upgrade step: {step}"))

        if definition.gate == "confirm":
            question = definition.question
            if callable(question):
                question = question(current)
            question = question or f"Run step '{step}'?"
            answer = ctx.operator.confirm(question)
            current = current.record(step, answer)
            if not answer:
                if definition.on_decline == "abort":
                    return _abort(
                        current,
                        aborted(definition.decline_message or f"{step} declined by operator"),
                    )
                if definition.decline_message:
                    ctx.console.warning(definition.decline_message)
                if definition.skip_to is None:
                    return _abort(current, aborted(f"no step to continue with after {step}"))
                current = current.moved_to(definition.skip_to)
                continue

        outcome = definition.handler(ctx, current)
        if isinstance(outcome, Err):
            return _abort(current, outcome.error)

        if isinstance(outcome.value, StepFinish):
            return Ok(current)

        current = outcome.value.state
