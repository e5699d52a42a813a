"""Tests for mup.core.config module."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from mup.core.config import (
    CONFIG_ENV_VAR,
    Config,
    RepositoryConfig,
    load_config,
    load_config_or_default,
    resolve_config_path,
)
from mup.core.result import Err, Ok
from mup.platform.paths import clear_caches

_FULL = """\
[instance]
dir = "/srv/mastodon/live"
user = "masto"
api_url = "https://social.example/api/v1/instance"

[repository]
fork = "memento/mastodon"
upstream_aliases = ["tootsuite/mastodon"]
branch_prefix = "mods-"

[database]
host = "db.internal"
port = 6432
user = "admin"

[backup]
min_free_gb = 25

[services]
after = ["postgresql", "redis"]
use_sudo = false
restart_helper = "restart-mastodon"

[search]
entities = ["accounts"]

[log]
watch_seconds = 5
"""


class TestDefaults:
    def test_defaults_are_usable(self) -> None:
        config = Config()
        assert config.instance.dir == "/home/mastodon/live"
        assert config.repository.branch_prefix == "mementomods-"
        assert config.database.host is None
        assert config.services.use_sudo is True
        assert config.backup.min_free_gb == 10.0

    def test_frozen(self) -> None:
        config = Config()
        with pytest.raises(AttributeError):
            config.instance = None  # type: ignore[misc]


class TestFromDict:
    def test_full_file(self, tmp_path: Path) -> None:
        path = tmp_path / "mup.toml"
        path.write_text(_FULL, encoding="utf-8")

        result = load_config(path)

        assert isinstance(result, Ok)
        config = result.value
        assert config.instance.user == "masto"
        assert config.repository.fork == "memento/mastodon"
        assert config.repository.branch_prefix == "mods-"
        assert config.database.port == 6432
        assert config.backup.min_free_gb == 25.0
        assert config.services.after == ("postgresql", "redis")
        assert config.services.use_sudo is False
        assert config.services.restart_helper == "restart-mastodon"
        assert config.search.entities == ("accounts",)
        assert config.log.watch_seconds == 5.0

    def test_wrong_types_fall_back_to_defaults(self) -> None:
        config = Config.from_dict(
            {
                "database": {"port": "5432", "host": 1},
                "backup": {"min_free_gb": -3},
                "services": {"use_sudo": "no", "after": ["ok", 1]},
            }
        )
        assert config.database.port == 5432
        assert config.database.host is None
        assert config.backup.min_free_gb == 10.0
        assert config.services.use_sudo is True
        assert config.services.after == ()

    def test_upstream_ids_put_configured_upstream_first(self) -> None:
        repo = RepositoryConfig(
            upstream="example/mastodon",
            upstream_aliases=("mastodon/mastodon", "example/mastodon"),
        )
        assert repo.upstream_ids == ("example/mastodon", "mastodon/mastodon")


class TestLoadConfig:
    def test_missing_file(self, tmp_path: Path) -> None:
        result = load_config(tmp_path / "missing.toml")
        assert isinstance(result, Err)
        assert "not found" in result.error.message

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "mup.toml"
        path.write_text("[instance\n", encoding="utf-8")

        result = load_config(path)

        assert isinstance(result, Err)
        assert "Invalid TOML" in result.error.message

    def test_no_file_gives_defaults(self) -> None:
        assert load_config_or_default(None) == Ok(Config())


class TestResolveConfigPath:
    @pytest.fixture(autouse=True)
    def _isolated(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> Iterator[None]:
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
        clear_caches()
        yield
        clear_caches()

    def test_explicit_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "env.toml"))
        assert resolve_config_path(tmp_path / "x.toml") == tmp_path / "x.toml"

    def test_env_var_before_cwd(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / "mup.toml").write_text("", encoding="utf-8")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "env.toml"))
        assert resolve_config_path(cwd=tmp_path) == tmp_path / "env.toml"

    def test_cwd_before_user_config(self, tmp_path: Path) -> None:
        user = tmp_path / "xdg" / "mup" / "config.toml"
        user.parent.mkdir(parents=True)
        user.write_text("", encoding="utf-8")
        (tmp_path / "mup.toml").write_text("", encoding="utf-8")

        assert resolve_config_path(cwd=tmp_path) == tmp_path / "mup.toml"

    def test_user_config(self, tmp_path: Path) -> None:
        user = tmp_path / "xdg" / "mup" / "config.toml"
        user.parent.mkdir(parents=True)
        user.write_text("", encoding="utf-8")
        empty = tmp_path / "empty"
        empty.mkdir()

        assert resolve_config_path(cwd=empty) == user

    def test_nothing_found(self, tmp_path: Path) -> None:
        assert resolve_config_path(cwd=tmp_path) is None
