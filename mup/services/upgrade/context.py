from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from mup.core.config import BackupConfig, Config
from mup.core.result import Result
from mup.git.repository import VersionControl
from mup.output.console import ConsoleProtocol
from mup.platform.paths import expand
from mup.services.backup import check_free_space
from mup.services.github import ForkSync
from mup.services.instance import InstanceClient
from mup.services.migrations import MigrationTool
from mup.services.systemd import ServiceManager
from mup.services.toolchain import Toolchain
from mup.services.tootctl import Tootctl
from mup.services.upgrade.errors import UpgradeError
from mup.services.upgrade.operator import Operator


@dataclass(frozen=True, slots=True)
class UpgradeContext:
    """Collaborators and settings shared by every step of one run."""

    config: Config
    console: ConsoleProtocol
    operator: Operator
    repo: VersionControl
    toolchain: Toolchain
    migrations: MigrationTool
    services: ServiceManager
    tootctl: Tootctl
    instance: InstanceClient
    fork_sync: ForkSync
    now: Callable[[], datetime]
    effective_uid: Callable[[], int]
    login_name: Callable[[], str]
    disk_check: Callable[[BackupConfig], Result[float, UpgradeError]] = check_free_space

    @property
    def instance_dir(self) -> Path:
        return expand(self.config.instance.dir)

    @property
    def upgrade_log(self) -> Path:
        return expand(self.config.log.upgrade_log)
