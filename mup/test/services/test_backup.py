from __future__ import annotations

from collections import namedtuple
from datetime import datetime
from pathlib import Path

import pytest

from mup.core.config import BackupConfig, DatabaseConfig
from mup.core.result import Err, Ok
from mup.services import backup
from mup.services.backup import backup_instructions, check_free_space, dump_is_local

_NOW = datetime(2025, 8, 25, 9, 5)
_DB = DatabaseConfig(host="db.internal", port=2222, user="admin")
_Usage = namedtuple("_Usage", "total used free")


class TestBackupInstructions:
    def test_production_dumps_directory_format(self) -> None:
        lines = backup_instructions(
            database=_DB, backup=BackupConfig(dir="/srv/backups/"), mode="production", now=_NOW
        )

        assert lines[0] == "ssh -p 2222 admin@db.internal"
        assert lines[1] == "sudo su -"
        assert lines[2].startswith("ionice -c2 -n7 nice -n19 pg_dump")
        assert "  --format=directory \\" in lines
        assert "  --jobs=2 \\" in lines
        assert lines[-1] == '  --file="/srv/backups/mastodon_production_2025-08-25_09-05.backup"'

    def test_development_dumps_single_file(self) -> None:
        lines = backup_instructions(
            database=_DB, backup=BackupConfig(), mode="development", now=_NOW
        )

        assert "  --port=2222 \\" in lines
        assert "  --format=custom \\" in lines
        assert "  --no-owner \\" in lines
        assert "  --jobs=2 \\" not in lines

    def test_placeholders_without_host(self) -> None:
        lines = backup_instructions(
            database=DatabaseConfig(), backup=BackupConfig(), mode="development", now=_NOW
        )

        assert lines[0] == "ssh -p 5432 <db-user>@<db-host>"


class TestCheckFreeSpace:
    def test_enough_space(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(backup.shutil, "disk_usage", lambda _: _Usage(0, 0, 50 * 1024**3))

        config = BackupConfig(dir=str(tmp_path / "not" / "yet"), min_free_gb=10)
        result = check_free_space(config)

        assert result == Ok(50.0)

    def test_not_enough_space(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(backup.shutil, "disk_usage", lambda _: _Usage(0, 0, 2 * 1024**3))

        result = check_free_space(BackupConfig(dir=str(tmp_path), min_free_gb=10))

        assert isinstance(result, Err)
        assert result.error.kind == "resource_insufficient"
        assert "only 2.0 GiB free" in result.error.message

    def test_measures_nearest_existing_parent(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        seen: list[Path] = []

        def usage(path: Path) -> _Usage:
            seen.append(path)
            return _Usage(0, 0, 100 * 1024**3)

        monkeypatch.setattr(backup.shutil, "disk_usage", usage)

        check_free_space(BackupConfig(dir=str(tmp_path / "a" / "b")))

        assert seen == [tmp_path]


class TestDumpIsLocal:
    @pytest.mark.parametrize("host", [None, "localhost", "127.0.0.1", "::1"])
    def test_loopback_or_unset_host(self, host: str | None) -> None:
        assert dump_is_local(DatabaseConfig(host=host))

    def test_remote_host(self) -> None:
        assert not dump_is_local(_DB)
