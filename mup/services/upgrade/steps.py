"""Step tables for the development and production workflows."""

from __future__ import annotations

from mup.services.upgrade import deploy, prepare
from mup.services.upgrade.engine import StepDef
from mup.services.upgrade.flow import SEQUENCES, following
from mup.services.upgrade.model import Step, WorkflowMode, WorkflowState


def publish_question(s: WorkflowState) -> str:
    if s.customizations_merged:
        return "Push the customization branch to your fork?"
    return "Push the new branch to your fork? No customizations were merged into it."


def build_steps(mode: WorkflowMode) -> dict[Step, StepDef]:
    production = mode == "production"

    def skip(step: Step) -> Step:
        return following(mode, step)

    steps: dict[Step, StepDef] = {
        "preflight": StepDef(prepare.step_preflight),
        "announce": StepDef(prepare.step_announce),
        "backup": StepDef(prepare.step_backup),
        "detect_remotes": StepDef(prepare.step_detect_remotes),
        "select_version": StepDef(prepare.step_select_version),
        "checkout": StepDef(
            prepare.step_checkout,
            gate="confirm",
            question=(
                "Check out the selected branch on the live instance?"
                if production
                else "Check out the selected version now?"
            ),
            on_decline="abort",
            decline_message="checkout declined by operator",
        ),
        "metadata": StepDef(prepare.step_metadata),
        "build": StepDef(deploy.step_build),
        "manual_fix": StepDef(deploy.step_manual_fix),
        "check_migrations": StepDef(deploy.step_check_migrations),
        "apply_migrations": StepDef(
            deploy.step_apply_migrations,
            gate="confirm",
            question=(
                "Run migrations? This will affect the live database."
                if production
                else "Run pending migrations?"
            ),
            on_decline="abort",
            decline_message="migrations are required to continue",
        ),
        "clear_cache": StepDef(
            deploy.step_clear_cache,
            gate="confirm",
            question="Clear the cache before restart?",
            skip_to=skip("clear_cache"),
        ),
        "rebuild_search": StepDef(
            deploy.step_rebuild_search,
            gate="confirm",
            question="Reset and rebuild the search index? This can take hours.",
            skip_to=skip("rebuild_search"),
        ),
        "restart_services": StepDef(
            deploy.step_restart_services,
            gate="confirm",
            question="Restart Mastodon services now? This causes a brief interruption.",
            skip_to=skip("restart_services"),
            decline_message="Services not restarted - manual restart required!",
        ),
        "verify": StepDef(deploy.step_verify),
        "complete": StepDef(deploy.step_complete),
    }

    if not production:
        steps["sync_fork"] = StepDef(
            prepare.step_sync_fork,
            gate="confirm",
            question="Sync your fork with upstream on GitHub?",
            skip_to=skip("sync_fork"),
        )
        steps["customize"] = StepDef(
            prepare.step_customize,
            gate="confirm",
            question="Create the customization branch and merge the previous customizations?",
            skip_to=skip("customize"),
            decline_message="Continuing without a customization branch",
        )
        steps["publish"] = StepDef(
            deploy.step_publish,
            gate="confirm",
            question=publish_question,
            skip_to=skip("publish"),
        )

    missing = set(SEQUENCES[mode]) - steps.keys()
    if missing:
        raise ValueError(f"steps without a definition: {sorted(missing)}")
    return steps
