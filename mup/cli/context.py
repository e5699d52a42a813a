from __future__ import annotations

import getpass
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import typer

from mup.cli.operator import TerminalOperator
from mup.core.config import Config, load_config_or_default, resolve_config_path
from mup.core.errors import ErrorCode
from mup.core.result import Err
from mup.git.repository import Repository
from mup.output.console import ConsoleProtocol, RichConsole
from mup.platform.http import RealHttpClient
from mup.platform.paths import expand, home
from mup.services.github import GhCli
from mup.services.instance import InstanceClient
from mup.services.migrations import RailsMigrations
from mup.services.systemd import SystemdManager
from mup.services.toolchain import RailsToolchain
from mup.services.tootctl import TootctlCli
from mup.services.upgrade.context import UpgradeContext


@dataclass(frozen=True, slots=True)
class CLIContext:
    config: Config
    config_path: Path | None
    console: ConsoleProtocol

    @property
    def instance_dir(self) -> Path:
        return expand(self.config.instance.dir)


def build_context() -> CLIContext:
    path = resolve_config_path()
    loaded = load_config_or_default(path)
    if isinstance(loaded, Err):
        typer.echo(f"error: {loaded.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

    return CLIContext(config=loaded.value, config_path=path, console=RichConsole())


def _now() -> datetime:
    return datetime.now().astimezone()


def upgrade_context(ctx: CLIContext) -> UpgradeContext:
    """Wire the real collaborators for an upgrade of the configured instance."""
    config = ctx.config
    console = ctx.console
    instance_dir = ctx.instance_dir
    rails_env = config.instance.rails_env

    return UpgradeContext(
        config=config,
        console=console,
        operator=TerminalOperator(console),
        repo=Repository(instance_dir),
        toolchain=RailsToolchain(
            instance_dir=instance_dir, rails_env=rails_env, console=console, home=home()
        ),
        migrations=RailsMigrations(instance_dir=instance_dir, rails_env=rails_env, console=console),
        services=SystemdManager(config=config.services, console=console, cwd=instance_dir),
        tootctl=TootctlCli(instance_dir=instance_dir, rails_env=rails_env, console=console),
        instance=InstanceClient(
            http=RealHttpClient(),
            api_url=config.instance.api_url,
            branch_prefix=config.repository.branch_prefix,
        ),
        fork_sync=GhCli(console=console, cwd=instance_dir),
        now=_now,
        effective_uid=os.geteuid,
        login_name=getpass.getuser,
    )
