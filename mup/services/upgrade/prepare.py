"""Steps that prepare the checkout: checks, announcements, remotes, version, branch."""

from __future__ import annotations

from dataclasses import replace

from mup.core.result import Err, Ok, Result
from mup.git.remotes import classify_remotes
from mup.git.repository import GitError
from mup.services.announcements import render_announcements
from mup.services.backup import backup_instructions, dump_is_local
from mup.services.env_metadata import write_version_metadata
from mup.services.github import GH_INSTALL_HINT
from mup.services.upgrade.context import UpgradeContext
from mup.services.upgrade.engine import StepOutcome
from mup.services.upgrade.errors import UpgradeError, aborted, cancelled, command_failed
from mup.services.upgrade.flow import next_step
from mup.services.upgrade.model import WorkflowMode, WorkflowState
from mup.services.upgrade.operator import Choice
from mup.services.upgrade.versions import (
    format_branch_name,
    select_latest_branch,
    select_latest_stable,
)

StepResult = Result[StepOutcome, UpgradeError]


def _git_failed(e: GitError, hint: str | None = None) -> Err[UpgradeError]:
    return Err(command_failed(f"git {e.command} failed", e.message, hint))


def _missing(message: str, hint: str | None = None) -> Err[UpgradeError]:
    return Err(UpgradeError(kind="configuration_missing", message=message, hint=hint))


# Preflight -------------------------------------------------------------------


def _check_services(ctx: UpgradeContext, mode: WorkflowMode) -> Result[None, UpgradeError]:
    """Report unit status; the development workflow also starts what is down."""
    cfg = ctx.config.services
    discovered = ctx.services.list_units(cfg.worker_prefix).unwrap_or([])
    units = [cfg.web, cfg.streaming, *(discovered or [cfg.worker_prefix])]
    if mode == "development":
        units.extend(cfg.after)

    inactive: list[str] = []
    for unit in units:
        if ctx.services.is_active(unit):
            ctx.console.success(f"{unit} is running")
        else:
            ctx.console.warning(f"{unit} is not running")
            inactive.append(unit)
    if not inactive:
        return Ok(None)

    if mode == "development" and ctx.operator.confirm(f"Start {' '.join(inactive)}?"):
        started = ctx.services.start(inactive)
        if isinstance(started, Err):
            ctx.console.error(str(started.error))
        inactive = [u for u in inactive if not ctx.services.is_active(u)]
        if not inactive:
            ctx.console.success("All services started")
            return Ok(None)
        for unit in inactive:
            ctx.console.error(f"Failed to start {unit}")

    if not ctx.operator.confirm("Some services are not running. Continue anyway?"):
        return Err(cancelled())
    return Ok(None)


def _deployed_version(ctx: UpgradeContext, mode: WorkflowMode) -> str | None:
    found = ctx.instance.deployed_version()
    if isinstance(found, Ok):
        ctx.console.info(f"Currently deployed branch: {found.value}")
        return found.value

    ctx.console.warning(f"Could not fetch the deployed version: {found.error.message}")
    if mode == "production":
        return None
    prefix = ctx.config.repository.branch_prefix
    answer = ctx.operator.ask(f"Enter the previous branch name (e.g. {prefix}2025-08-24)")
    return answer.strip() or None


def step_preflight(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    cfg = ctx.config
    user = cfg.instance.user
    ctx.console.header(f"Mastodon {s.mode} upgrade")

    if ctx.effective_uid() == 0:
        return Err(
            UpgradeError(
                kind="permission_denied",
                message="mup must not run as root or with sudo",
                hint=f"Run it as the {user} user: su - {user}",
            )
        )
    if s.mode == "development" and ctx.login_name() != user:
        return Err(
            UpgradeError(
                kind="permission_denied",
                message=f"the development upgrade must run as the {user} user",
                hint=f"su - {user}",
            )
        )
    if s.mode == "production":
        missing = [name for name in ("host", "user") if not getattr(cfg.database, name)]
        if missing:
            return _missing(
                f"database {' and '.join(missing)} not configured",
                hint="Set them in the [database] table of mup.toml.",
            )
        ctx.console.warning("This will affect the live production instance!")

    if not ctx.instance_dir.is_dir():
        return _missing(
            f"instance directory not found: {ctx.instance_dir}",
            hint="Set [instance] dir in mup.toml.",
        )

    ctx.console.info("Checking service status...")
    checked = _check_services(ctx, s.mode)
    if isinstance(checked, Err):
        return checked

    previous = _deployed_version(ctx, s.mode)
    new_branch = None
    if s.mode == "development":
        new_branch = format_branch_name(cfg.repository.branch_prefix, ctx.now().date())
        ctx.console.info(f"New branch will be: {new_branch}")
    return next_step(replace(s, previous_version=previous, new_branch=new_branch))


# Announcements and backup ----------------------------------------------------


def step_announce(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    ctx.console.header("Maintenance announcements")
    if s.mode == "production":
        ctx.console.warning("Skip these if they were posted during the development upgrade.")
    for line in render_announcements(ctx.config.instance, ctx.now()):
        ctx.console.print(line)
    ctx.operator.acknowledge("Announcements created")

    if s.mode == "production" and not ctx.operator.confirm(
        "Are you sure you want to continue with the production upgrade?"
    ):
        return Err(cancelled())
    return next_step(s)


def step_backup(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    ctx.console.header("Database backup")
    ctx.console.print("Run these commands on the database server:")
    lines = backup_instructions(
        database=ctx.config.database,
        backup=ctx.config.backup,
        mode=s.mode,
        now=ctx.now(),
    )
    for line in lines:
        ctx.console.print(line)
    ctx.console.warning("The backup may take 30+ minutes and slow the database down")

    database, backup = ctx.config.database, ctx.config.backup
    if not dump_is_local(database):
        ctx.console.warning(
            f"Make sure {backup.dir} on {database.host} has at least "
            f"{backup.min_free_gb:g} GiB free"
        )
    else:
        space = ctx.disk_check(backup)
        if isinstance(space, Err):
            ctx.console.error(space.error.message)
            if not ctx.operator.confirm("Continue without enough room for the backup?"):
                return space
        else:
            ctx.console.info(f"{space.value:.1f} GiB free in {backup.dir}")

    if s.mode == "development":
        ctx.operator.acknowledge("Database backup started")
    else:
        ctx.operator.acknowledge("Database backup completed")
    return next_step(s)


# Remotes and fork ------------------------------------------------------------


def _ask_remote(ctx: UpgradeContext, role: str) -> str | None:
    ctx.console.error(f"Could not find the remote for {role}")
    answer = ctx.operator.ask(f"Enter the remote name for {role}")
    return answer.strip() or None


def step_detect_remotes(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    cfg = ctx.config.repository
    ctx.console.header("Remotes")

    listed = ctx.repo.remotes()
    if isinstance(listed, Err):
        return Err(
            UpgradeError(
                kind="detection_failed",
                message=f"cannot list git remotes: {listed.error.message}",
                hint=f"Is {ctx.instance_dir} a git checkout?",
            )
        )
    roles = classify_remotes(listed.value, fork=cfg.fork, upstream_ids=cfg.upstream_ids)

    fork = roles.fork or _ask_remote(ctx, f"your fork ({cfg.fork or 'unset'})")
    if fork is None:
        return _missing("no remote for the fork", hint="Set [repository] fork in mup.toml.")

    upstream = roles.upstream
    if upstream is None and s.mode == "development":
        upstream = _ask_remote(ctx, f"upstream ({cfg.upstream})")
        if upstream is None:
            return _missing("no remote for upstream", hint="git remote add upstream <url>")
    ctx.console.success(f"Using remotes: fork={fork}, upstream={upstream or '-'}")

    commits_behind = 0
    if s.mode == "development":
        assert upstream is not None
        fetched = ctx.repo.fetch(upstream, cfg.main_branch)
        if isinstance(fetched, Err):
            return _git_failed(fetched.error)
        commits_behind = ctx.repo.count_commits(f"HEAD..{upstream}/{cfg.main_branch}").unwrap_or(0)
        if commits_behind > 0:
            ctx.console.warning(
                f"Your checkout is {commits_behind} commits behind {cfg.upstream}:{cfg.main_branch}"
            )
        else:
            ctx.console.success(f"Up to date with {cfg.upstream}:{cfg.main_branch}")
    else:
        fetched = ctx.repo.fetch(fork)
        if isinstance(fetched, Err):
            return _git_failed(fetched.error)

    return next_step(
        replace(s, fork_remote=fork, upstream_remote=upstream, commits_behind=commits_behind)
    )


def _manual_sync(ctx: UpgradeContext) -> None:
    cfg = ctx.config.repository
    ctx.console.print(f"1. Go to https://github.com/{cfg.fork}/tree/{cfg.main_branch}")
    ctx.console.print(f"2. Click 'Sync fork' to sync with {cfg.upstream}:{cfg.main_branch}")
    ctx.operator.acknowledge("Manual GitHub sync completed")


def step_sync_fork(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    cfg = ctx.config.repository
    gh = ctx.fork_sync
    if not cfg.fork:
        ctx.console.warning("No fork configured ([repository] fork); skipping GitHub sync")
        return next_step(s)

    if not gh.available():
        ctx.console.warning(f"GitHub CLI not found. {GH_INSTALL_HINT}")
        _manual_sync(ctx)
        return next_step(s)

    if not gh.authenticated():
        ctx.console.warning("GitHub CLI found but not authenticated")
        gh.login()
        if not gh.authenticated():
            return Err(
                UpgradeError(
                    kind="permission_denied",
                    message="GitHub CLI authentication failed",
                    hint="Run 'gh auth login' manually, then start the upgrade again.",
                )
            )
        ctx.console.success("GitHub CLI authenticated")

    synced = gh.sync(cfg.fork, cfg.upstream)
    if isinstance(synced, Err):
        ctx.console.error(f"Fork sync failed: {synced.error}")
        ctx.console.warning("Please sync manually:")
        _manual_sync(ctx)
    else:
        ctx.console.success(f"Fork {cfg.fork} synced with {cfg.upstream}")
    return next_step(s)


# Version and checkout --------------------------------------------------------


def _select_development_target(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    main = ctx.config.repository.main_branch
    tags = ctx.repo.tags()
    if isinstance(tags, Err):
        return _git_failed(tags.error)

    latest = select_latest_stable(tags.value, ctx.config.versions.prerelease_markers)
    if isinstance(latest, Ok):
        ctx.console.success(f"Latest stable version: {latest.value}")
        if ctx.operator.confirm(f"Use nightly ({main}) instead of {latest.value}?"):
            return next_step(replace(s, target_ref=main, target_kind="main"))
        return next_step(replace(s, target_ref=latest.value, target_kind="tag"))

    ctx.console.warning(latest.error.message)
    if ctx.operator.confirm(f"Use the {main} branch (nightly)?"):
        return next_step(replace(s, target_ref=main, target_kind="main"))
    tag = ctx.operator.ask("Enter the version tag (e.g. v4.4.0)").strip()
    if not tag:
        return Err(aborted("a version tag is required"))
    return next_step(replace(s, target_ref=tag, target_kind="tag"))


def _select_production_target(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    prefix = ctx.config.repository.branch_prefix
    branches = ctx.repo.remote_branches()
    if isinstance(branches, Err):
        return _git_failed(branches.error)

    latest = select_latest_branch(branches.value, prefix=prefix, remote=s.fork_remote)
    if isinstance(latest, Ok):
        branch = latest.value
        ctx.console.success(f"Newest branch: {branch}")
        if not ctx.operator.confirm(f"Deploy branch {branch} to production?"):
            return Err(cancelled("deployment cancelled"))
    else:
        ctx.console.warning(latest.error.message)
        branch = ctx.operator.ask(
            f"Enter the branch name from development (e.g. {prefix}2025-08-25)"
        ).strip()
        if not branch:
            return Err(aborted("a branch name is required"))
    return next_step(replace(s, target_ref=branch, target_kind="branch", new_branch=branch))


def step_select_version(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    ctx.console.header("Version")
    fetched = ctx.repo.fetch_all()
    if isinstance(fetched, Err):
        return _git_failed(fetched.error)
    if s.mode == "development":
        return _select_development_target(ctx, s)
    return _select_production_target(ctx, s)


def _stash_if_dirty(ctx: UpgradeContext) -> Result[None, UpgradeError]:
    dirty = ctx.repo.has_unstaged_changes()
    if isinstance(dirty, Err):
        return _git_failed(dirty.error)
    if not dirty.value:
        return Ok(None)

    ctx.console.warning("You have unstaged changes in your working directory:")
    ctx.console.print(ctx.repo.status_short().unwrap_or(""))
    if not ctx.operator.confirm("Stash these changes?"):
        return Err(aborted("cannot proceed with unstaged changes"))
    stamp = ctx.now().strftime("%Y-%m-%d %H:%M:%S")
    stashed = ctx.repo.stash(f"Auto-stash before upgrade on {stamp}")
    if isinstance(stashed, Err):
        return _git_failed(stashed.error)
    ctx.console.success("Changes stashed")
    return Ok(None)


def step_checkout(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    assert s.target_ref is not None
    ref = s.target_ref
    repo = ctx.repo

    clean = _stash_if_dirty(ctx)
    if isinstance(clean, Err):
        return clean

    if s.mode == "production":
        assert s.fork_remote is not None
        checked = repo.checkout_tracking(ref, s.fork_remote)
        if isinstance(checked, Err):
            return _git_failed(checked.error)
        ctx.console.info("Recent commits:")
        for line in repo.log_oneline(10).unwrap_or([]):
            ctx.console.print(f"  {line}")
        if not ctx.operator.confirm("Do the changes look correct?"):
            return Err(aborted("changes rejected by operator"))
        ctx.console.success(f"Checked out {ref}")
        return next_step(s)

    checked = repo.checkout(ref)
    if isinstance(checked, Err):
        return _git_failed(checked.error)
    if s.target_kind == "main":
        assert s.upstream_remote is not None
        pulled = repo.pull(s.upstream_remote, ref)
        if isinstance(pulled, Err):
            return _git_failed(pulled.error)
        head = repo.head_summary()
        if isinstance(head, Ok):
            commit = head.value
            upstream = ctx.config.repository.upstream
            ctx.console.success(f"Latest {ref} commit: {commit.short_sha} - {commit.subject}")
            ctx.console.info(f"  Date: {commit.relative_date}")
            ctx.console.info(f"  Link: https://github.com/{upstream}/commit/{commit.short_sha}")
    ctx.console.success(f"Checked out {ref}")
    return next_step(s)


# Customization branch --------------------------------------------------------

_EXISTING_BRANCH: tuple[Choice[str], ...] = (
    Choice("use", "Use existing branch", "Check it out as it is"),
    Choice("recreate", "Delete and create new branch", "Start over from the selected version"),
    Choice("exit", "Exit", "Stop the upgrade here"),
)

_MERGE_CONFLICT: tuple[Choice[str], ...] = (
    Choice("resolve", "Resolve", "Fix the conflicts in another shell, commit, then continue"),
    Choice("skip", "Skip", "Abort the merge and continue with upstream code only"),
    Choice("abort", "Abort", "Abort the merge, drop the new branch and stop"),
)


def _prepare_branch(ctx: UpgradeContext, branch: str) -> Result[bool, UpgradeError]:
    """Check out ``branch``; Ok(True) when this call created it."""
    repo = ctx.repo
    if repo.branch_exists(branch):
        ctx.console.warning(f"Branch '{branch}' already exists")
        choice = ctx.operator.choose("What would you like to do?", _EXISTING_BRANCH)
        if choice == "exit":
            return Err(cancelled(f"branch {branch} already exists"))
        if choice == "use":
            checked = repo.checkout(branch)
            if isinstance(checked, Err):
                return _git_failed(checked.error)
            return Ok(False)
        deleted = repo.delete_branch(branch)
        if isinstance(deleted, Err):
            return _git_failed(deleted.error)

    created = repo.create_branch(branch)
    if isinstance(created, Err):
        return _git_failed(created.error)
    checked = repo.checkout(branch)
    if isinstance(checked, Err):
        return _git_failed(checked.error)
    ctx.console.success(f"Created and checked out {branch}")
    return Ok(True)


def _merge_source(ctx: UpgradeContext, s: WorkflowState, previous: str) -> str:
    if ctx.repo.branch_exists(previous) or s.fork_remote is None:
        return previous
    return f"{s.fork_remote}/{previous}"


def step_customize(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    assert s.new_branch is not None and s.target_ref is not None
    repo = ctx.repo
    branch = s.new_branch

    prepared = _prepare_branch(ctx, branch)
    if isinstance(prepared, Err):
        return prepared
    created_here = prepared.value

    if s.previous_version is None:
        ctx.console.warning("No previous version detected for merging")
        return next_step(s)

    source = _merge_source(ctx, s, s.previous_version)
    ctx.console.info(f"Merging {source}...")
    merged = repo.merge(source)
    if isinstance(merged, Ok):
        ctx.console.success("Merge successful")
        return next_step(replace(s, customizations_merged=True))
    if not merged.error.conflict:
        return _git_failed(merged.error)

    ctx.console.error(f"Merging {source} stopped on conflicts")
    choice = ctx.operator.choose("How do you want to continue?", _MERGE_CONFLICT)
    if choice == "resolve":
        ctx.operator.acknowledge("Merge conflicts resolved and committed")
        if ctx.operator.confirm(
            "Do you need to manually apply additional mods from the previous branch?"
        ):
            ctx.console.warning(f"Apply the remaining mods from {source} on top of {branch}")
            ctx.operator.acknowledge("Additional mods applied")
        return next_step(replace(s, customizations_merged=True))

    undone = repo.merge_abort()
    if isinstance(undone, Err):
        return _git_failed(undone.error, hint="Run 'git merge --abort' by hand.")

    if choice == "skip":
        ctx.console.warning(
            f"Continuing with upstream code only; {s.previous_version} is left untouched"
        )
        return next_step(s)

    back = repo.checkout(s.target_ref)
    if isinstance(back, Err):
        return _git_failed(back.error)
    if created_here:
        dropped = repo.delete_branch(branch)
        if isinstance(dropped, Err):
            return _git_failed(dropped.error)
    return Err(
        UpgradeError(
            kind="conflict_detected",
            message=f"merge of {source} into {branch} aborted",
            hint=f"Resolve the conflicts between {s.target_ref} and {source} first.",
        )
    )


def deployed_name(s: WorkflowState) -> str:
    """Name the instance will report once this upgrade is live."""
    if s.mode == "development" and not s.confirmed("customize"):
        return s.target_ref or ""
    return s.new_branch or s.target_ref or ""


def step_metadata(ctx: UpgradeContext, s: WorkflowState) -> StepResult:
    cfg = ctx.config.repository
    name = deployed_name(s)
    ctx.console.info(f"Updating version metadata in {cfg.env_file}...")
    written = write_version_metadata(
        instance_dir=ctx.instance_dir,
        env_file=cfg.env_file,
        branch=name,
        upstream=cfg.upstream,
        main_branch=cfg.main_branch,
        fork=cfg.fork,
    )
    if isinstance(written, Err):
        ctx.console.warning(f"{written.error}; skipping version metadata")
        return next_step(s)

    update = written.value
    for key, value in update.values.items():
        verb = "added" if key in update.added else "updated"
        ctx.console.success(f"{key} {verb}: {value}")
    return next_step(s)
