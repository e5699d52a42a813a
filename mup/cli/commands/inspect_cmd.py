from __future__ import annotations

import typer

from mup.cli.commands._helpers import exit_with_code
from mup.cli.context import CLIContext, build_context
from mup.core.errors import ErrorCode
from mup.core.result import Err
from mup.git.remotes import RemoteClassification, classify_remotes
from mup.git.repository import Repository
from mup.output.console import Style
from mup.services.upgrade.versions import select_latest_branch, select_latest_stable


def _repository(ctx: CLIContext) -> Repository:
    repo = Repository(ctx.instance_dir)
    if not repo.exists():
        ctx.console.error(f"not a git checkout: {repo.path}")
        ctx.console.print("hint: set [instance] dir in mup.toml", Style.DIM)
        exit_with_code(ErrorCode.ENV_ERROR)
    return repo


def _classify(ctx: CLIContext, repo: Repository) -> RemoteClassification:
    listed = repo.remotes()
    if isinstance(listed, Err):
        ctx.console.error(listed.error.message)
        exit_with_code(ErrorCode.ENV_ERROR)
    cfg = ctx.config.repository
    return classify_remotes(listed.value, fork=cfg.fork, upstream_ids=cfg.upstream_ids)


def remotes() -> None:
    """Show which git remotes are the fork and upstream."""
    ctx = build_context()
    repo = _repository(ctx)
    cfg = ctx.config.repository

    for entry in repo.remotes().unwrap_or([]):
        ctx.console.print(f"{entry.name}\t{entry.url} ({entry.direction})", Style.DIM)

    roles = _classify(ctx, repo)
    if roles.fork:
        ctx.console.success(f"fork: {roles.fork}")
    else:
        ctx.console.warning(f"fork: no remote matches '{cfg.fork or '(unset)'}'")
    if roles.upstream:
        ctx.console.success(f"upstream: {roles.upstream}")
    else:
        ctx.console.warning(f"upstream: no remote matches {', '.join(cfg.upstream_ids)}")

    if not roles.complete:
        exit_with_code(ErrorCode.ENV_ERROR)


def latest(
    fetch: bool = typer.Option(False, "--fetch", help="Fetch all remotes first."),
) -> None:
    """Show the newest stable tag and the newest customization branch."""
    ctx = build_context()
    repo = _repository(ctx)
    cfg = ctx.config

    if fetch:
        fetched = repo.fetch_all()
        if isinstance(fetched, Err):
            ctx.console.error(fetched.error.message)
            exit_with_code(ErrorCode.NETWORK_ERROR)

    tags = repo.tags()
    if isinstance(tags, Err):
        ctx.console.error(tags.error.message)
        exit_with_code(ErrorCode.ENV_ERROR)
    stable = select_latest_stable(tags.value, cfg.versions.prerelease_markers)
    if isinstance(stable, Err):
        ctx.console.warning(f"stable: {stable.error.message}")
    else:
        ctx.console.success(f"stable: {stable.value}")

    fork = _classify(ctx, repo).fork
    branches = repo.remote_branches().unwrap_or([])
    branch = select_latest_branch(branches, prefix=cfg.repository.branch_prefix, remote=fork)
    if isinstance(branch, Err):
        ctx.console.warning(f"branch: {branch.error.message}")
    else:
        ctx.console.success(f"branch: {branch.value}")

    if isinstance(stable, Err) and isinstance(branch, Err):
        exit_with_code(ErrorCode.ENV_ERROR)
