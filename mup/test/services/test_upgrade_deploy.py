"""Tests for the build, database and rollout steps."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from mup.core.config import ServicesConfig
from mup.core.result import Err, Ok, Result
from mup.services.migrations import PendingMigration
from mup.services.toolchain import BuildFailure
from mup.services.upgrade.deploy import (
    step_apply_migrations,
    step_build,
    step_check_migrations,
    step_complete,
    step_manual_fix,
    step_publish,
    step_rebuild_search,
    step_restart_services,
    step_verify,
)
from mup.services.upgrade.engine import StepAdvance, StepFinish, StepOutcome
from mup.services.upgrade.errors import UpgradeError
from mup.services.upgrade.model import WorkflowState, initial_state
from mup.services.upgrade.testing import harness


def _advanced(result: Result[StepOutcome, UpgradeError]) -> WorkflowState:
    assert isinstance(result, Ok), result
    assert isinstance(result.value, StepAdvance)
    return result.value.state


def _at(step: str, mode: str = "development", **changes: object) -> WorkflowState:
    return replace(initial_state(mode), step=step, **changes)  # type: ignore[arg-type]


def _failure(condition: str | None) -> BuildFailure:
    return BuildFailure(
        command="bundle install",
        returncode=5,
        condition=condition,  # type: ignore[arg-type]
        output_tail="",
    )


class TestBuild:
    def test_success_moves_to_migrations(self, tmp_path: Path) -> None:
        h = harness(tmp_path)

        state = _advanced(step_build(h.context(), _at("build")))

        assert state.step == "check_migrations"
        assert state.build_attempts == 1
        assert h.toolchain.precompiles == 1

    def test_missing_ruby_is_installed_when_confirmed(self, tmp_path: Path) -> None:
        h = harness(tmp_path)
        h.toolchain.ruby = "3.4.5"

        _advanced(step_build(h.context(), _at("build")))

        assert h.operator.confirmed("Install Ruby 3.4.5?") is True
        assert "3.4.5" in h.toolchain.installed_rubies

    def test_declined_ruby_install_continues_with_warning(self, tmp_path: Path) -> None:
        h = harness(tmp_path)
        h.toolchain.ruby = "3.4.5"
        h.operator.confirms["Install Ruby"] = False

        _advanced(step_build(h.context(), _at("build")))

        assert h.toolchain.installed_rubies == set()
        assert h.console.find("Continuing with the current Ruby")

    def test_node_mismatch_is_a_warning(self, tmp_path: Path) -> None:
        h = harness(tmp_path)
        h.config = replace(h.config, runtime=replace(h.config.runtime, node_version="22"))
        h.toolchain.node = "20.11.1"

        _advanced(step_build(h.context(), _at("build")))

        assert h.console.find("nvm install 22 && nvm alias default 22")

    def test_corepack_failure_stops_the_build(self, tmp_path: Path) -> None:
        h = harness(tmp_path)
        h.toolchain.corepack_fails = True

        result = step_build(h.context(), _at("build"))

        assert isinstance(result, Err)
        assert result.error.kind == "external_command_failed"
        assert h.toolchain.installs == 0

    def test_unrecognized_failure_is_fatal(self, tmp_path: Path) -> None:
        h = harness(tmp_path)
        h.toolchain.install_failures.append(_failure(None))

        result = step_build(h.context(), _at("build"))

        assert isinstance(result, Err)
        assert result.error.message == "bundle install failed: exit status 5"
        assert result.error.hint == "See the command output above."

    def test_recognized_failure_goes_to_manual_fix(self, tmp_path: Path) -> None:
        h = harness(tmp_path)
        h.toolchain.install_failures.append(_failure("libvips"))

        state = _advanced(step_build(h.context(), _at("build")))

        assert state.step == "manual_fix"
        assert state.build_failure is not None
        assert state.build_attempts == 1

    def test_manual_fix_returns_to_build(self, tmp_path: Path) -> None:
        h = harness(tmp_path)
        s = _at("manual_fix", build_attempts=1, build_failure=_failure("libvips"))

        state = _advanced(step_manual_fix(h.context(), s))

        assert state.step == "build"
        assert state.manual_fix_used is True
        assert h.console.find("libvips >= 8.13")

    def test_retry_skips_runtime_checks(self, tmp_path: Path) -> None:
        h = harness(tmp_path)
        h.toolchain.ruby = "3.4.5"

        _advanced(step_build(h.context(), _at("build", build_attempts=1, manual_fix_used=True)))

        assert not h.operator.asked("Install Ruby")
        assert h.console.find("Build (retry)")


class TestMigrations:
    def test_nothing_pending_skips_apply(self, tmp_path: Path) -> None:
        h = harness(tmp_path)

        state = _advanced(step_check_migrations(h.context(), _at("check_migrations")))

        assert state.step == "clear_cache"

    def test_pending_goes_to_apply(self, tmp_path: Path) -> None:
        h = harness(tmp_path)
        h.migrations.waiting.append(PendingMigration("20250801120000", "Add quote posts"))

        state = _advanced(step_check_migrations(h.context(), _at("check_migrations")))

        assert state.step == "apply_migrations"
        assert len(state.pending_migrations) == 1
        assert h.console.find("20250801120000  Add quote posts")

    def test_development_can_run_one_migration_by_version(self, tmp_path: Path) -> None:
        h = harness(tmp_path)
        h.operator.answers["Enter migration VERSION"] = "20230724160715"

        state = _advanced(step_apply_migrations(h.context(), _at("apply_migrations")))

        assert state.step == "clear_cache"
        assert h.migrations.applied_all == 1
        assert h.migrations.applied_one == ["20230724160715"]


class TestSearchAndServices:
    def test_rebuild_search_starts_elasticsearch_and_deploys_each_entity(
        self, tmp_path: Path
    ) -> None:
        h = harness(tmp_path)

        _advanced(step_rebuild_search(h.context(), _at("rebuild_search")))

        assert h.services.started == ["elasticsearch"]
        assert h.tootctl.calls == [
            "search reset",
            "search deploy accounts",
            "search deploy statuses",
        ]

    def test_restart_uses_helper_when_available(self, tmp_path: Path) -> None:
        h = harness(tmp_path)
        h.config = replace(
            h.config, services=replace(h.config.services, restart_helper="restart-mastodon")
        )
        h.services.helpers.add("restart-mastodon")

        state = _advanced(step_restart_services(h.context(), _at("restart_services")))

        assert state.restarted is True
        assert h.services.helpers_run == ["restart-mastodon"]
        assert h.services.restarted == []

    def test_restart_falls_back_to_units_without_helper(self, tmp_path: Path) -> None:
        h = harness(tmp_path)
        h.config = replace(
            h.config,
            services=ServicesConfig(restart_helper="restart-mastodon", after=("postgresql",)),
        )
        h.services.workers = ["mastodon-sidekiq-push.service", "mastodon-sidekiq.service"]

        _advanced(step_restart_services(h.context(), _at("restart_services")))

        assert h.services.restarted == [
            "mastodon-sidekiq.service",
            "mastodon-sidekiq-push.service",
            "mastodon-streaming",
            "mastodon-web",
            "postgresql",
        ]

    def test_restart_failure_stops_at_the_failing_unit(self, tmp_path: Path) -> None:
        h = harness(tmp_path)
        h.services.failing_units.add("mastodon-streaming")

        result = step_restart_services(h.context(), _at("restart_services"))

        assert isinstance(result, Err)
        assert result.error.hint == "Check: journalctl -u mastodon-streaming"
        assert h.services.restarted == ["mastodon-sidekiq.service"]


class TestWrapUp:
    def test_development_verify_waits_for_testing(self, tmp_path: Path) -> None:
        h = harness(tmp_path)

        _advanced(step_verify(h.context(), _at("verify")))

        assert h.operator.asked("Testing completed")
        assert h.console.find("[ ] Emoji picker works")

    def test_production_verify_lists_journal_commands(self, tmp_path: Path) -> None:
        h = harness(tmp_path)

        _advanced(step_verify(h.context(), _at("verify", "production")))

        assert h.console.find("No FATAL errors logged")
        assert h.console.find("sudo journalctl -u mastodon-web -f")
        assert not h.operator.asked("Testing completed")

    def test_publish_without_customization_pushes_nothing(self, tmp_path: Path) -> None:
        h = harness(tmp_path)
        s = _at("publish", fork_remote="origin", new_branch="mementomods-2025-08-25")

        state = _advanced(step_publish(h.context(), s))

        assert state.step == "complete"
        assert h.repo.pushed == []

    def test_complete_appends_to_the_log(self, tmp_path: Path) -> None:
        h = harness(tmp_path)
        log = tmp_path / "upgrades.log"
        log.write_text("earlier entry\n", encoding="utf-8")
        s = _at("complete", "production", new_branch="mementomods-2025-08-25", commits_behind=0)

        result = step_complete(h.context(), s)

        assert isinstance(result, Ok)
        assert isinstance(result.value, StepFinish)
        lines = log.read_text(encoding="utf-8").splitlines()
        assert lines == [
            "earlier entry",
            "2025-08-25 10:30:00 - Upgrade completed: unknown -> mementomods-2025-08-25 "
            "(was 0 commits behind)",
        ]
        assert h.console.find("Services were not restarted")
