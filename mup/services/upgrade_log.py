"""Append-only history of completed upgrades."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from mup.platform.files import append_line


@dataclass(frozen=True, slots=True)
class UpgradeLogEntry:
    timestamp: datetime
    from_version: str | None
    to_version: str
    commits_behind: int

    def format(self) -> str:
        stamp = self.timestamp.strftime("%Y-%m-%d %H:%M:%S")
        previous = self.from_version or "unknown"
        return (
            f"{stamp} - Upgrade completed: {previous} -> {self.to_version} "
            f"(was {self.commits_behind} commits behind)"
        )


def record_upgrade(path: Path, entry: UpgradeLogEntry) -> None:
    append_line(path, entry.format())
