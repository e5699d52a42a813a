"""Step order of the two upgrade workflows."""

from __future__ import annotations

from mup.core.result import Ok, Result
from mup.services.upgrade.engine import StepOutcome, advance
from mup.services.upgrade.errors import UpgradeError
from mup.services.upgrade.model import Step, WorkflowMode, WorkflowState

DEVELOPMENT_SEQUENCE: tuple[Step, ...] = (
    "preflight",
    "announce",
    "backup",
    "detect_remotes",
    "sync_fork",
    "select_version",
    "checkout",
    "customize",
    "metadata",
    "build",
    "check_migrations",
    "clear_cache",
    "rebuild_search",
    "restart_services",
    "verify",
    "publish",
    "complete",
)

PRODUCTION_SEQUENCE: tuple[Step, ...] = tuple(
    step for step in DEVELOPMENT_SEQUENCE if step not in {"sync_fork", "customize", "publish"}
)

SEQUENCES: dict[WorkflowMode, tuple[Step, ...]] = {
    "development": DEVELOPMENT_SEQUENCE,
    "production": PRODUCTION_SEQUENCE,
}

# Off-sequence steps: manual_fix re-enters the build, apply_migrations
# continues as if check_migrations had found nothing.
_REENTRY: dict[Step, Step] = {"manual_fix": "build"}
_ANCHORS: dict[Step, Step] = {"apply_migrations": "check_migrations"}


def following(mode: WorkflowMode, step: Step) -> Step:
    """The step that comes after ``step`` in the ``mode`` workflow."""
    if step in _REENTRY:
        return _REENTRY[step]
    anchor = _ANCHORS.get(step, step)
    sequence = SEQUENCES[mode]
    index = sequence.index(anchor)
    if index + 1 >= len(sequence):
        raise ValueError(f"no step follows {step} in the {mode} workflow")
    return sequence[index + 1]


def next_step(s: WorkflowState) -> Result[StepOutcome, UpgradeError]:
    """Advance to the step after ``s.step``."""
    return Ok(advance(s.moved_to(following(s.mode, s.step))))


def go_to(s: WorkflowState, step: Step) -> Result[StepOutcome, UpgradeError]:
    return Ok(advance(s.moved_to(step)))
