"""Typed configuration loading and access.

This module provides dataclasses for the mup.toml structure. Every field has
a default so a partial (or missing) file still yields a usable Config; the
values that have no sensible default (database host and user) are validated
by the workflow that needs them.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from mup.platform.paths import user_config_dir

from .result import Err, Ok, Result
from .structured import (
    StrDict,
    as_str_dict,
    get_bool,
    get_float,
    get_int,
    get_str,
    get_str_list,
    get_table,
)

__all__ = [
    "BackupConfig",
    "Config",
    "ConfigError",
    "DatabaseConfig",
    "InstanceConfig",
    "LogConfig",
    "RepositoryConfig",
    "RuntimeConfig",
    "SearchConfig",
    "ServicesConfig",
    "VersionsConfig",
    "load_config",
    "load_config_or_default",
    "resolve_config_path",
    "CONFIG_ENV_VAR",
    "DEFAULT_UPSTREAM_IDS",
    "DEFAULT_PRERELEASE_MARKERS",
]

CONFIG_ENV_VAR = "MUP_CONFIG"
CONFIG_FILE_NAME = "mup.toml"

DEFAULT_UPSTREAM_IDS = ("mastodon/mastodon", "tootsuite/mastodon")
DEFAULT_PRERELEASE_MARKERS = ("alpha", "beta", "rc")


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class InstanceConfig:
    """Where the instance lives and how it is reached."""

    dir: str = "/home/mastodon/live"
    user: str = "mastodon"
    api_url: str = "https://your-instance.com/api/v1/instance"
    instance_url: str = "https://your-instance.com"
    test_url: str = "https://your-test-instance.com"
    status_url: str = "https://status.your-instance.com"
    maintenance_url: str = "https://your-status-page-url/maintenances"
    rails_env: str = "production"


@dataclass(frozen=True, slots=True)
class RepositoryConfig:
    """Repository identifiers used to recognise remotes and branches.

    ``fork`` and the entries of ``upstream_aliases`` are matched as substrings
    of remote URLs (``org/repo``).
    """

    fork: str = ""
    upstream: str = "mastodon/mastodon"
    upstream_aliases: tuple[str, ...] = DEFAULT_UPSTREAM_IDS
    branch_prefix: str = "mementomods-"
    main_branch: str = "main"
    env_file: str = ".env.production"

    @property
    def upstream_ids(self) -> tuple[str, ...]:
        """Configured upstream first, then the aliases, without duplicates."""
        return tuple(dict.fromkeys((self.upstream, *self.upstream_aliases)))


@dataclass(frozen=True, slots=True)
class VersionsConfig:
    prerelease_markers: tuple[str, ...] = DEFAULT_PRERELEASE_MARKERS


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    """Database server reached by the operator for the backup."""

    host: str | None = None
    port: int = 5432
    user: str | None = None
    name: str = "mastodon_production"


@dataclass(frozen=True, slots=True)
class BackupConfig:
    """Where pg_dump writes on the database server.

    ``min_free_gb`` is checked against ``dir`` only when the database host is
    this machine (unset or a loopback name). For a remote host the operator is
    told to check the space there instead.
    """

    dir: str = "/tmp/mastodon-backups"
    min_free_gb: float = 10.0


@dataclass(frozen=True, slots=True)
class ServicesConfig:
    """systemd unit names.

    Workers are discovered by ``worker_prefix``; ``after`` units (e.g. the
    database on a single-box dev machine) restart last.
    """

    web: str = "mastodon-web"
    streaming: str = "mastodon-streaming"
    worker_prefix: str = "mastodon-sidekiq"
    after: tuple[str, ...] = ()
    use_sudo: bool = True
    restart_helper: str | None = None
    elasticsearch: str = "elasticsearch"


@dataclass(frozen=True, slots=True)
class SearchConfig:
    entities: tuple[str, ...] = ("accounts", "statuses")
    concurrency: int = 16
    batch_size: int = 4096


@dataclass(frozen=True, slots=True)
class RuntimeConfig:
    node_version: str | None = None


@dataclass(frozen=True, slots=True)
class LogConfig:
    upgrade_log: str = "~/mastodon-upgrades.log"
    watch_seconds: float = 30.0


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container."""

    instance: InstanceConfig = field(default_factory=InstanceConfig)
    repository: RepositoryConfig = field(default_factory=RepositoryConfig)
    versions: VersionsConfig = field(default_factory=VersionsConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)
    services: ServicesConfig = field(default_factory=ServicesConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    log: LogConfig = field(default_factory=LogConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Config:
        """Create Config from a mapping (parsed TOML)."""
        instance: StrDict = get_table(data, "instance") or {}
        repository: StrDict = get_table(data, "repository") or {}
        versions: StrDict = get_table(data, "versions") or {}
        database: StrDict = get_table(data, "database") or {}
        backup: StrDict = get_table(data, "backup") or {}
        services: StrDict = get_table(data, "services") or {}
        search: StrDict = get_table(data, "search") or {}
        runtime: StrDict = get_table(data, "runtime") or {}
        log: StrDict = get_table(data, "log") or {}

        d_instance = InstanceConfig()
        d_repository = RepositoryConfig()
        d_database = DatabaseConfig()
        d_backup = BackupConfig()
        d_services = ServicesConfig()
        d_search = SearchConfig()
        d_log = LogConfig()

        return cls(
            instance=InstanceConfig(
                dir=get_str(instance, "dir") or d_instance.dir,
                user=get_str(instance, "user") or d_instance.user,
                api_url=get_str(instance, "api_url") or d_instance.api_url,
                instance_url=get_str(instance, "instance_url") or d_instance.instance_url,
                test_url=get_str(instance, "test_url") or d_instance.test_url,
                status_url=get_str(instance, "status_url") or d_instance.status_url,
                maintenance_url=get_str(instance, "maintenance_url")
                or d_instance.maintenance_url,
                rails_env=get_str(instance, "rails_env") or d_instance.rails_env,
            ),
            repository=RepositoryConfig(
                fork=get_str(repository, "fork") or d_repository.fork,
                upstream=get_str(repository, "upstream") or d_repository.upstream,
                upstream_aliases=get_str_list(repository, "upstream_aliases")
                or d_repository.upstream_aliases,
                branch_prefix=get_str(repository, "branch_prefix") or d_repository.branch_prefix,
                main_branch=get_str(repository, "main_branch") or d_repository.main_branch,
                env_file=get_str(repository, "env_file") or d_repository.env_file,
            ),
            versions=VersionsConfig(
                prerelease_markers=get_str_list(versions, "prerelease_markers")
                or DEFAULT_PRERELEASE_MARKERS,
            ),
            database=DatabaseConfig(
                host=get_str(database, "host"),
                port=get_int(database, "port") or d_database.port,
                user=get_str(database, "user"),
                name=get_str(database, "name") or d_database.name,
            ),
            backup=BackupConfig(
                dir=get_str(backup, "dir") or d_backup.dir,
                min_free_gb=_non_negative(get_float(backup, "min_free_gb"), d_backup.min_free_gb),
            ),
            services=ServicesConfig(
                web=get_str(services, "web") or d_services.web,
                streaming=get_str(services, "streaming") or d_services.streaming,
                worker_prefix=get_str(services, "worker_prefix") or d_services.worker_prefix,
                after=get_str_list(services, "after") or d_services.after,
                use_sudo=_bool_or(get_bool(services, "use_sudo"), d_services.use_sudo),
                restart_helper=get_str(services, "restart_helper"),
                elasticsearch=get_str(services, "elasticsearch") or d_services.elasticsearch,
            ),
            search=SearchConfig(
                entities=get_str_list(search, "entities") or d_search.entities,
                concurrency=get_int(search, "concurrency") or d_search.concurrency,
                batch_size=get_int(search, "batch_size") or d_search.batch_size,
            ),
            runtime=RuntimeConfig(
                node_version=get_str(runtime, "node_version"),
            ),
            log=LogConfig(
                upgrade_log=get_str(log, "upgrade_log") or d_log.upgrade_log,
                watch_seconds=_non_negative(get_float(log, "watch_seconds"), d_log.watch_seconds),
            ),
        )


def _bool_or(value: bool | None, default: bool) -> bool:
    return default if value is None else value


def _non_negative(value: float | None, default: float) -> float:
    if value is None or value < 0:
        return default
    return value


def resolve_config_path(explicit: Path | None = None, *, cwd: Path | None = None) -> Path | None:
    """Find the config file to load.

    Order: explicit path, $MUP_CONFIG, ./mup.toml, ~/.config/mup/config.toml.
    An explicit or environment path is returned even if it does not exist so
    the caller can report it; the implicit locations only count when present.
    """
    if explicit is not None:
        return explicit.expanduser()

    env = os.environ.get(CONFIG_ENV_VAR)
    if env:
        return Path(env).expanduser()

    local = (cwd or Path.cwd()) / CONFIG_FILE_NAME
    if local.is_file():
        return local

    user = user_config_dir() / "config.toml"
    if user.is_file():
        return user

    return None


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file, handling import and parse errors."""
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load and parse configuration from a TOML file.

    Args:
        path: Path to the mup.toml file

    Returns:
        Ok(Config) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        config = Config.from_dict(result.value)
        return Ok(config)
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config structure: {e}", path=path))


def load_config_or_default(path: Path | None) -> Result[Config, ConfigError]:
    """Load config from ``path``, or return defaults when no file was found."""
    if path is None:
        return Ok(Config())
    return load_config(path)
