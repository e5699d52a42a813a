from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Literal

from mup.services.migrations import PendingMigration
from mup.services.toolchain import BuildFailure
from mup.services.upgrade.errors import UpgradeError

WorkflowMode = Literal["development", "production"]
TargetKind = Literal["tag", "main", "branch"]

Step = Literal[
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
    "manual_fix",
    "check_migrations",
    "apply_migrations",
    "clear_cache",
    "rebuild_search",
    "restart_services",
    "verify",
    "publish",
    "complete",
    "aborted",
]


def _no_confirmations() -> dict[Step, bool]:
    return {}


@dataclass(frozen=True, slots=True)
class WorkflowState:
    """Everything an upgrade has learned so far.

    A state is never changed in place; each transition produces a new one.
    ``confirmations`` holds the operator's answer for every gated step that
    was asked, ``history`` the steps that were left, in order.
    """

    mode: WorkflowMode
    step: Step
    confirmations: Mapping[Step, bool] = field(default_factory=_no_confirmations)
    last_error: UpgradeError | None = None
    fork_remote: str | None = None
    upstream_remote: str | None = None
    previous_version: str | None = None
    target_ref: str | None = None
    target_kind: TargetKind | None = None
    new_branch: str | None = None
    commits_behind: int = 0
    build_attempts: int = 0
    build_failure: BuildFailure | None = None
    manual_fix_used: bool = False
    pending_migrations: tuple[PendingMigration, ...] = ()
    customizations_merged: bool = False
    restarted: bool = False
    history: tuple[Step, ...] = ()

    def record(self, step: Step, answer: bool) -> WorkflowState:
        return replace(self, confirmations={**self.confirmations, step: answer})

    def confirmed(self, step: Step) -> bool:
        return self.confirmations.get(step) is True

    def moved_to(self, step: Step) -> WorkflowState:
        return replace(self, step=step, history=(*self.history, self.step))

    def failed(self, error: UpgradeError) -> WorkflowState:
        return replace(
            self,
            step="aborted",
            last_error=error,
            history=(*self.history, self.step),
        )


def initial_state(mode: WorkflowMode) -> WorkflowState:
    return WorkflowState(mode=mode, step="preflight")
