"""Database backup instructions and the free-space check.

The dump is written by pg_dump on the database server, so free space can
only be measured from here when that server is this machine.
"""

from __future__ import annotations

import shutil
from datetime import datetime
from pathlib import Path

from mup.core.config import BackupConfig, DatabaseConfig
from mup.core.result import Err, Ok, Result
from mup.services.upgrade.errors import UpgradeError
from mup.services.upgrade.model import WorkflowMode

_GB = 1024**3

LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


def dump_is_local(database: DatabaseConfig) -> bool:
    """True when the backup lands on this machine (no host, or a loopback host)."""
    return database.host is None or database.host in LOCAL_HOSTS


def backup_instructions(
    *,
    database: DatabaseConfig,
    backup: BackupConfig,
    mode: WorkflowMode,
    now: datetime,
) -> list[str]:
    """Commands the operator runs on the database server.

    Production dumps in directory format with parallel jobs; development uses a
    single custom-format file that restores into a differently-owned database.
    """
    stamp = now.strftime("%Y-%m-%d_%H-%M")
    target = f"{backup.dir.rstrip('/')}/{database.name}_{stamp}.backup"
    if mode == "production":
        options = ["--format=directory", "--jobs=2"]
    else:
        options = [f"--port={database.port}", "--format=custom", "--no-owner"]

    dump = [
        "ionice -c2 -n7 nice -n19 pg_dump \\",
        "  --host=localhost \\",
        "  --username=mastodon \\",
        f"  --dbname={database.name} \\",
        *(f"  {opt} \\" for opt in options),
        "  --compress=5 \\",
        "  --verbose \\",
        f'  --file="{target}"',
    ]
    return [
        f"ssh -p {database.port} {database.user or '<db-user>'}@{database.host or '<db-host>'}",
        "sudo su -",
        *dump,
    ]


def _existing_ancestor(path: Path) -> Path:
    for candidate in (path, *path.parents):
        if candidate.exists():
            return candidate
    return Path("/")


def check_free_space(backup: BackupConfig) -> Result[float, UpgradeError]:
    """Free space (GiB) where backups are written, if at least ``min_free_gb``."""
    where = _existing_ancestor(Path(backup.dir))
    try:
        free_gb = shutil.disk_usage(where).free / _GB
    except OSError as e:
        return Err(
            UpgradeError(
                kind="resource_insufficient",
                message=f"cannot determine free space at {where}: {e}",
            )
        )

    if free_gb < backup.min_free_gb:
        return Err(
            UpgradeError(
                kind="resource_insufficient",
                message=(
                    f"only {free_gb:.1f} GiB free at {where}, "
                    f"backup needs at least {backup.min_free_gb:g} GiB"
                ),
                hint="Free up disk space or point [backup] dir at a larger volume.",
            )
        )
    return Ok(free_gb)
