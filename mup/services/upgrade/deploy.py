"""Steps that rebuild and roll out the checked-out code."""

from __future__ import annotations

from dataclasses import replace

from mup.core.result import Err, Ok, Result
from mup.services.systemd import plan_restart
from mup.services.toolchain import KNOWN_CONDITIONS, BuildFailure
from mup.services.upgrade.context import UpgradeContext
from mup.services.upgrade.engine import FINISH, StepOutcome
from mup.services.upgrade.errors import UpgradeError, command_failed
from mup.services.upgrade.flow import go_to, next_step
from mup.services.upgrade.model import WorkflowState
from mup.services.upgrade.prepare import deployed_name
from mup.services.upgrade_log import UpgradeLogEntry, record_upgrade

StepResult = Result[StepOutcome, UpgradeError]

_DEVELOPMENT_CHECKLIST = (
    "Audio notifications work",
    "Emoji picker works",
    "Different feeds work (bookmarks, favs...)",
    "Toot edits work from the arrow",
    "Site loads and functions properly",
)

_PRODUCTION_CHECKLIST = (
    "Site is accessible at your instance URL",
    "Users can log in",
    "Posting works",
    "Federation is working",
    "Search is functional",
)


# Build -----------------------------------------------------------------------


def _check_runtimes(ctx: UpgradeContext) -> Result[None, UpgradeError]:
    tools = ctx.toolchain

    ruby = tools.required_ruby()
    if ruby is not None:
        if tools.ruby_installed(ruby):
            ctx.console.success(f"Ruby {ruby} is installed")
        else:
            ctx.console.warning(f"Ruby {ruby} is not installed")
            updated = tools.update_ruby_build()
            if isinstance(updated, Err):
                ctx.console.warning("Could not update ruby-build definitions (continuing)")
            installed = False
            if ctx.operator.confirm(f"Install Ruby {ruby}?"):
                result = tools.install_ruby(ruby)
                installed = isinstance(result, Ok)
                if not installed:
                    ctx.console.error(f"Failed to install Ruby {ruby}")
            if installed:
                ctx.console.success(f"Ruby {ruby} installed")
            else:
                ctx.console.warning("Continuing with the current Ruby, the build may fail")

    wanted_node = ctx.config.runtime.node_version
    if wanted_node is not None:
        node = tools.node_version()
        if node == wanted_node:
            ctx.console.success(f"Node.js v{node} is active")
        else:
            ctx.console.warning(
                f"Node.js v{wanted_node} required, v{node or 'none'} active; "
                f"switch with: nvm install {wanted_node} && nvm alias default {wanted_node}"
            )

    corepack = tools.enable_corepack()
    if isinstance(corepack, Err):
        return Err(
            command_failed(
                "cannot enable corepack",
                str(corepack.error),
                hint="Install Node.js with npm, then run: npm install -g corepack",
            )
        )
    return Ok(None)


def _build_failed(s: WorkflowState, failure: BuildFailure, attempts: int) -> StepResult:
    if failure.recognized and not s.manual_fix_used:
        return go_to(replace(s, build_attempts=attempts, build_failure=failure), "manual_fix")

    hint = "See the command output above."
    if failure.condition is not None:
        hint = KNOWN_CONDITIONS[failure.condition].remediation
    return Err(
        command_failed(
            f"{failure.command} failed",
            f"exit status {failure.returncode}",
            hint=hint,
        )
    )


def step_build(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    tools = ctx.toolchain
    attempts = s.build_attempts + 1
    ctx.console.header("Build" if attempts == 1 else "Build (retry)")

    if attempts == 1:
        checked = _check_runtimes(ctx)
        if isinstance(checked, Err):
            return checked

    cleaned = tools.clean()
    if isinstance(cleaned, Err):
        return Err(command_failed("cleaning build caches failed", str(cleaned.error)))

    bundler = tools.ensure_bundler()
    if isinstance(bundler, Err):
        return Err(command_failed("installing bundler failed", str(bundler.error)))
    if bundler.value is not None:
        ctx.console.success(f"Bundler {bundler.value} available")

    installed = tools.install()
    if isinstance(installed, Err):
        return _build_failed(s, installed.error, attempts)

    compiled = tools.precompile()
    if isinstance(compiled, Err):
        return _build_failed(s, compiled.error, attempts)

    ctx.console.success("Build completed")
    return next_step(replace(s, build_attempts=attempts, build_failure=None))


def step_manual_fix(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    assert s.build_failure is not None and s.build_failure.condition is not None
    known = KNOWN_CONDITIONS[s.build_failure.condition]
    ctx.console.error(known.summary)
    ctx.console.print(known.remediation)
    ctx.operator.acknowledge(f"Fixed: {known.summary}")
    ctx.console.info("Retrying build...")
    return next_step(replace(s, manual_fix_used=True))


# Database --------------------------------------------------------------------


def step_check_migrations(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    ctx.console.header("Migrations")
    pending = ctx.migrations.pending()
    if isinstance(pending, Err):
        return Err(command_failed("rails db:migrate:status failed", str(pending.error)))

    if not pending.value:
        ctx.console.info("No pending migrations")
        return next_step(replace(s, pending_migrations=()))

    ctx.console.warning("Pending migrations found:")
    for migration in pending.value:
        ctx.console.print(f"  {migration}")
    return go_to(replace(s, pending_migrations=tuple(pending.value)), "apply_migrations")


def step_apply_migrations(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    applied = ctx.migrations.apply_all()
    if isinstance(applied, Err):
        return Err(command_failed("rails db:migrate failed", str(applied.error)))
    ctx.console.success("Migrations completed")

    if s.mode == "development" and ctx.operator.confirm(
        "Do you need to run specific migrations manually?"
    ):
        version = ctx.operator.ask("Enter migration VERSION (e.g. 20230724160715)").strip()
        if version:
            one = ctx.migrations.apply_one(version)
            if isinstance(one, Err):
                return Err(command_failed(f"migration {version} failed", str(one.error)))
            ctx.console.success(f"Migration {version} applied")
    return next_step(s)


# Cache, search, services -----------------------------------------------------


def step_clear_cache(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    cleared = ctx.tootctl.clear_cache()
    if isinstance(cleared, Err):
        return Err(command_failed("tootctl cache clear failed", str(cleared.error)))
    ctx.console.success("Cache cleared")
    return next_step(s)


def step_rebuild_search(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    search = ctx.config.search
    elasticsearch = ctx.config.services.elasticsearch
    if not ctx.services.is_active(elasticsearch):
        ctx.console.info(f"Starting {elasticsearch}...")
        started = ctx.services.start([elasticsearch])
        if isinstance(started, Err):
            return Err(command_failed(f"cannot start {elasticsearch}", str(started.error)))

    ctx.console.info("Resetting search index...")
    reset = ctx.tootctl.reset_search()
    if isinstance(reset, Err):
        return Err(command_failed("search index reset failed", str(reset.error)))

    for entity in search.entities:
        ctx.console.info(f"Rebuilding {entity} index (this may take a while)...")
        deployed = ctx.tootctl.deploy_search(
            entity, concurrency=search.concurrency, batch_size=search.batch_size
        )
        if isinstance(deployed, Err):
            return Err(command_failed(f"search deploy for {entity} failed", str(deployed.error)))
    ctx.console.success("Search index rebuilt")
    return next_step(s)


def step_restart_services(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    cfg = ctx.config.services
    helper = cfg.restart_helper
    if helper is not None and ctx.services.helper_available(helper):
        ran = ctx.services.run_helper(helper)
        if isinstance(ran, Err):
            return Err(command_failed(f"{helper} failed", str(ran.error)))
        ctx.console.success("Services restarted")
        return next_step(replace(s, restarted=True))

    listed = ctx.services.list_units(cfg.worker_prefix)
    if isinstance(listed, Err):
        ctx.console.warning(f"Could not list worker units, restarting {cfg.worker_prefix} only")
    plan = plan_restart(cfg, listed.unwrap_or([]))

    for unit in plan.ordered:
        restarted = ctx.services.restart([unit])
        if isinstance(restarted, Err):
            return Err(
                command_failed(
                    f"restarting {unit} failed",
                    str(restarted.error),
                    hint=f"Check: journalctl -u {unit}",
                )
            )
    ctx.console.success("Services restarted")
    return next_step(replace(s, restarted=True))


# Verification and wrap-up ----------------------------------------------------


def _watch_for_fatal(ctx: UpgradeContext) -> None:
    web = ctx.config.services.web
    seconds = ctx.config.log.watch_seconds
    ctx.console.info(f"Watching {web} for FATAL errors ({seconds:g}s)...")
    watched = ctx.services.watch_journal(web, seconds)
    if isinstance(watched, Err):
        ctx.console.warning(f"Could not follow the {web} journal: {watched.error}")
        return
    fatal = [line for line in watched.value.splitlines() if "FATAL" in line]
    if not fatal:
        ctx.console.success("No FATAL errors logged")
        return
    ctx.console.warning(f"{len(fatal)} FATAL lines logged:")
    for line in fatal:
        ctx.console.print(f"  {line}")


def step_verify(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    ctx.console.header("Verification")
    if s.mode == "development":
        test_url = ctx.config.instance.test_url
        ctx.console.warning(f"Please test the following at {test_url}:")
        for item in _DEVELOPMENT_CHECKLIST:
            ctx.console.print(f"[ ] {item}")
        ctx.operator.acknowledge("Testing completed")
        return next_step(s)

    _watch_for_fatal(ctx)
    ctx.console.warning("Please verify the following:")
    for item in _PRODUCTION_CHECKLIST:
        ctx.console.print(f"[ ] {item}")
    ctx.console.info("To monitor logs:")
    services = ctx.config.services
    for unit in (services.web, services.worker_prefix, services.streaming):
        ctx.console.print(f"  sudo journalctl -u {unit} -f")
    return next_step(s)


def step_publish(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    if not s.confirmed("customize") or s.new_branch is None:
        ctx.console.warning("No customization branch was created; nothing to push")
        return next_step(s)
    assert s.fork_remote is not None
    pushed = ctx.repo.push(s.fork_remote, s.new_branch)
    if isinstance(pushed, Err):
        return Err(
            command_failed(
                f"git push to {s.fork_remote} failed",
                pushed.error.message,
                hint=f"git push --set-upstream {s.fork_remote} {s.new_branch}",
            )
        )
    ctx.console.success(f"{s.new_branch} pushed to {s.fork_remote}")
    return next_step(s)


def step_complete(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    target = deployed_name(s)
    entry = UpgradeLogEntry(
        timestamp=ctx.now(),
        from_version=s.previous_version,
        to_version=target,
        commits_behind=s.commits_behind,
    )
    try:
        record_upgrade(ctx.upgrade_log, entry)
    except OSError as e:
        ctx.console.warning(f"Could not write the upgrade log {ctx.upgrade_log}: {e}")

    ctx.console.header("Upgrade summary")
    ctx.console.success(f"{s.mode.capitalize()} upgrade completed")
    ctx.console.info(f"  New version: {target}")
    ctx.console.info(f"  Previous version: {s.previous_version or 'unknown'}")
    if s.commits_behind > 0:
        ctx.console.warning(f"  Commits synced from upstream: {s.commits_behind}")
    if not s.restarted:
        ctx.console.warning("  Services were not restarted; restart them manually")
    if s.mode == "development":
        ctx.console.info("  Next step: run 'mup production' on the live server")
    ctx.console.info(f"Upgrade history saved to: {ctx.upgrade_log}")
    return Ok(FINISH)
