"""In-memory collaborators for driving an upgrade without a real instance.

``FakeRepository`` keeps branches and refs as plain name -> commit maps, so a
test can check where HEAD ended up after a scenario. ``harness`` wires every
fake into an UpgradeContext rooted in a temporary directory.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from mup.core.config import (
    BackupConfig,
    Config,
    DatabaseConfig,
    InstanceConfig,
    LogConfig,
    RepositoryConfig,
)
from mup.core.result import Err, Ok, Result
from mup.git.remotes import RemoteEntry
from mup.git.repository import CommitSummary, GitError
from mup.output.console import MockConsole
from mup.platform.http import MockHttpClient
from mup.platform.process import ProcessError
from mup.services.instance import InstanceClient
from mup.services.migrations import PendingMigration
from mup.services.toolchain import BuildFailure
from mup.services.upgrade.context import UpgradeContext
from mup.services.upgrade.errors import UpgradeError
from mup.services.upgrade.operator import ScriptedOperator

__all__ = [
    "FakeForkSync",
    "FakeMigrations",
    "FakeRepository",
    "FakeServices",
    "FakeToolchain",
    "FakeTootctl",
    "Harness",
    "harness",
]

FIXED_NOW = datetime(2025, 8, 25, 10, 30)
API_URL = "https://social.example/api/v1/instance"


def _process_error(*argv: str) -> ProcessError:
    return ProcessError(command=argv, returncode=1, stdout="", stderr="simulated failure")


@dataclass
class FakeRepository:
    """Git checkout kept in memory.

    ``branches`` are local branches, ``refs`` everything else that can be
    checked out (tags and ``remote/branch`` names). Merging a ref listed in
    ``conflicts`` stops mid-merge like git does.
    """

    path: Path
    entries: list[RemoteEntry] = field(default_factory=list)
    branches: dict[str, str] = field(default_factory=dict)
    refs: dict[str, str] = field(default_factory=dict)
    head: str = "main"
    head_commit: str = "c0"
    behind: int = 0
    dirty: bool = False
    conflicts: set[str] = field(default_factory=set)
    failing: dict[str, GitError] = field(default_factory=dict)
    merging: str | None = None
    stashes: list[str] = field(default_factory=list)
    pushed: list[tuple[str, str]] = field(default_factory=list)
    calls: list[str] = field(default_factory=list)

    def _fail(self, op: str) -> Err[GitError] | None:
        self.calls.append(op)
        error = self.failing.get(op)
        return Err(error) if error is not None else None

    def remotes(self) -> Result[list[RemoteEntry], GitError]:
        return self._fail("remotes") or Ok(list(self.entries))

    def fetch(self, remote: str, ref: str | None = None) -> Result[None, GitError]:
        return self._fail("fetch") or Ok(None)

    def fetch_all(self) -> Result[None, GitError]:
        return self._fail("fetch_all") or Ok(None)

    def count_commits(self, revision_range: str) -> Result[int, GitError]:
        return self._fail("count_commits") or Ok(self.behind)

    def tags(self, pattern: str = "v*") -> Result[list[str], GitError]:
        failed = self._fail("tags")
        if failed is not None:
            return failed
        return Ok([ref for ref in self.refs if ref.startswith("v")])

    def remote_branches(self) -> Result[list[str], GitError]:
        failed = self._fail("remote_branches")
        if failed is not None:
            return failed
        return Ok([ref for ref in self.refs if "/" in ref])

    def branch_exists(self, name: str) -> bool:
        return name in self.branches

    def head_sha(self) -> Result[str, GitError]:
        return self._fail("head_sha") or Ok(self.head_commit)

    def has_unstaged_changes(self) -> Result[bool, GitError]:
        return self._fail("has_unstaged_changes") or Ok(self.dirty)

    def status_short(self) -> Result[str, GitError]:
        return Ok(" M config/settings.yml" if self.dirty else "")

    def stash(self, message: str) -> Result[None, GitError]:
        failed = self._fail("stash")
        if failed is not None:
            return failed
        self.stashes.append(message)
        self.dirty = False
        return Ok(None)

    def checkout(self, ref: str) -> Result[None, GitError]:
        failed = self._fail("checkout")
        if failed is not None:
            return failed
        if ref in self.branches:
            self.head, self.head_commit = ref, self.branches[ref]
        elif ref in self.refs:
            self.head, self.head_commit = ref, self.refs[ref]
        else:
            return Err(GitError(command="checkout", message=f"pathspec '{ref}' did not match"))
        return Ok(None)

    def checkout_tracking(self, branch: str, remote: str) -> Result[None, GitError]:
        failed = self._fail("checkout_tracking")
        if failed is not None:
            return failed
        tracked = f"{remote}/{branch}"
        if tracked not in self.refs:
            return Err(GitError(command="checkout", message=f"'{tracked}' is not a commit"))
        self.branches[branch] = self.refs[tracked]
        self.head, self.head_commit = branch, self.refs[tracked]
        return Ok(None)

    def create_branch(self, name: str) -> Result[None, GitError]:
        failed = self._fail("create_branch")
        if failed is not None:
            return failed
        self.branches[name] = self.head_commit
        return Ok(None)

    def delete_branch(self, name: str) -> Result[None, GitError]:
        failed = self._fail("delete_branch")
        if failed is not None:
            return failed
        self.branches.pop(name, None)
        return Ok(None)

    def pull(self, remote: str, ref: str, *, rebase: bool = False) -> Result[None, GitError]:
        return self._fail("pull") or Ok(None)

    def merge(self, ref: str) -> Result[None, GitError]:
        failed = self._fail("merge")
        if failed is not None:
            return failed
        if ref in self.conflicts:
            self.merging = ref
            return Err(
                GitError(
                    command="merge",
                    message="Automatic merge failed; fix conflicts and then commit the result.",
                    conflict=True,
                )
            )
        self.head_commit = f"merge({self.head_commit},{ref})"
        if self.head in self.branches:
            self.branches[self.head] = self.head_commit
        return Ok(None)

    def merge_abort(self) -> Result[None, GitError]:
        failed = self._fail("merge_abort")
        if failed is not None:
            return failed
        self.merging = None
        return Ok(None)

    def push(self, remote: str, branch: str) -> Result[None, GitError]:
        failed = self._fail("push")
        if failed is not None:
            return failed
        self.pushed.append((remote, branch))
        return Ok(None)

    def head_summary(self) -> Result[CommitSummary, GitError]:
        return Ok(CommitSummary(self.head_commit[:7], "Bump version", "2 hours ago"))

    def log_oneline(self, count: int = 10) -> Result[list[str], GitError]:
        return Ok([f"{self.head_commit[:7]} Bump version"])


@dataclass
class FakeToolchain:
    """Build tools whose ``install`` fails once per queued BuildFailure."""

    ruby: str | None = None
    installed_rubies: set[str] = field(default_factory=set)
    node: str | None = None
    install_failures: list[BuildFailure] = field(default_factory=list)
    corepack_fails: bool = False
    installs: int = 0
    precompiles: int = 0

    def required_ruby(self) -> str | None:
        return self.ruby

    def ruby_installed(self, version: str) -> bool:
        return version in self.installed_rubies

    def update_ruby_build(self) -> Result[None, ProcessError]:
        return Ok(None)

    def install_ruby(self, version: str) -> Result[None, ProcessError]:
        self.installed_rubies.add(version)
        return Ok(None)

    def node_version(self) -> str | None:
        return self.node

    def enable_corepack(self) -> Result[None, ProcessError]:
        if self.corepack_fails:
            return Err(_process_error("corepack", "enable"))
        return Ok(None)

    def ensure_bundler(self) -> Result[str | None, ProcessError]:
        return Ok(None)

    def clean(self) -> Result[None, ProcessError]:
        return Ok(None)

    def install(self) -> Result[None, BuildFailure]:
        self.installs += 1
        if self.install_failures:
            return Err(self.install_failures.pop(0))
        return Ok(None)

    def precompile(self) -> Result[None, BuildFailure]:
        self.precompiles += 1
        return Ok(None)


@dataclass
class FakeMigrations:
    waiting: list[PendingMigration] = field(default_factory=list)
    applied_all: int = 0
    applied_one: list[str] = field(default_factory=list)

    def pending(self) -> Result[list[PendingMigration], ProcessError]:
        return Ok(list(self.waiting))

    def apply_all(self) -> Result[None, ProcessError]:
        self.applied_all += 1
        self.waiting.clear()
        return Ok(None)

    def apply_one(self, version: str) -> Result[None, ProcessError]:
        self.applied_one.append(version)
        return Ok(None)


@dataclass
class FakeServices:
    active: set[str] = field(default_factory=set)
    workers: list[str] = field(default_factory=list)
    helpers: set[str] = field(default_factory=set)
    failing_units: set[str] = field(default_factory=set)
    journal: str = ""
    started: list[str] = field(default_factory=list)
    restarted: list[str] = field(default_factory=list)
    helpers_run: list[str] = field(default_factory=list)

    def is_active(self, unit: str) -> bool:
        return unit in self.active

    def list_units(self, prefix: str) -> Result[list[str], ProcessError]:
        return Ok([u for u in self.workers if u.startswith(prefix)])

    def start(self, units: Sequence[str]) -> Result[None, ProcessError]:
        for unit in units:
            if unit in self.failing_units:
                return Err(_process_error("systemctl", "start", unit))
            self.started.append(unit)
            self.active.add(unit)
        return Ok(None)

    def restart(self, units: Sequence[str]) -> Result[None, ProcessError]:
        for unit in units:
            if unit in self.failing_units:
                return Err(_process_error("systemctl", "restart", unit))
            self.restarted.append(unit)
        return Ok(None)

    def helper_available(self, name: str) -> bool:
        return name in self.helpers

    def run_helper(self, name: str) -> Result[None, ProcessError]:
        self.helpers_run.append(name)
        return Ok(None)

    def watch_journal(self, unit: str, seconds: float) -> Result[str, ProcessError]:
        return Ok(self.journal)


@dataclass
class FakeTootctl:
    calls: list[str] = field(default_factory=list)

    def clear_cache(self) -> Result[None, ProcessError]:
        self.calls.append("cache clear")
        return Ok(None)

    def reset_search(self) -> Result[None, ProcessError]:
        self.calls.append("search reset")
        return Ok(None)

    def deploy_search(
        self, entity: str, *, concurrency: int, batch_size: int
    ) -> Result[None, ProcessError]:
        self.calls.append(f"search deploy {entity}")
        return Ok(None)


@dataclass
class FakeForkSync:
    installed: bool = True
    logged_in: bool = True
    sync_fails: bool = False
    synced: list[tuple[str, str]] = field(default_factory=list)

    def available(self) -> bool:
        return self.installed

    def authenticated(self) -> bool:
        return self.logged_in

    def login(self) -> Result[None, ProcessError]:
        return Ok(None)

    def sync(self, fork: str, upstream: str) -> Result[None, ProcessError]:
        if self.sync_fails:
            return Err(_process_error("gh", "repo", "sync"))
        self.synced.append((fork, upstream))
        return Ok(None)


@dataclass
class Harness:
    """An UpgradeContext plus direct handles on every fake behind it."""

    config: Config
    console: MockConsole
    operator: ScriptedOperator
    repo: FakeRepository
    toolchain: FakeToolchain
    migrations: FakeMigrations
    services: FakeServices
    tootctl: FakeTootctl
    fork_sync: FakeForkSync
    http: MockHttpClient
    free_gb: float | None = 100.0
    uid: int = 1000
    login: str = "mastodon"

    @property
    def instance_dir(self) -> Path:
        return Path(self.config.instance.dir)

    def _disk_check(self, backup: BackupConfig) -> Result[float, UpgradeError]:
        if self.free_gb is None or self.free_gb < backup.min_free_gb:
            return Err(
                UpgradeError(kind="resource_insufficient", message="not enough free space")
            )
        return Ok(self.free_gb)

    def context(self) -> UpgradeContext:
        return UpgradeContext(
            config=self.config,
            console=self.console,
            operator=self.operator,
            repo=self.repo,
            toolchain=self.toolchain,
            migrations=self.migrations,
            services=self.services,
            tootctl=self.tootctl,
            instance=InstanceClient(
                http=self.http,
                api_url=self.config.instance.api_url,
                branch_prefix=self.config.repository.branch_prefix,
            ),
            fork_sync=self.fork_sync,
            now=lambda: FIXED_NOW,
            effective_uid=lambda: self.uid,
            login_name=lambda: self.login,
            disk_check=self._disk_check,
        )


def harness(root: Path, *, deployed: str | None = "4.4.3+mementomods-2025-08-24") -> Harness:
    """A healthy instance under ``root`` one release behind upstream.

    Upstream has tagged v4.4.4; the fork carries ``mementomods-2025-08-24``
    and every service is running.
    """
    instance_dir = root / "live"
    instance_dir.mkdir(parents=True, exist_ok=True)
    (instance_dir / ".env.production").write_text(
        "LOCAL_DOMAIN=social.example\nMASTODON_VERSION_METADATA='old'\n", encoding="utf-8"
    )

    config = Config(
        instance=InstanceConfig(dir=str(instance_dir), api_url=API_URL),
        repository=RepositoryConfig(fork="memento/mastodon"),
        database=DatabaseConfig(host="db.internal", user="admin"),
        backup=BackupConfig(dir=str(root / "backups"), min_free_gb=10.0),
        log=LogConfig(upgrade_log=str(root / "upgrades.log"), watch_seconds=0.0),
    )

    repo = FakeRepository(
        path=instance_dir,
        entries=[
            RemoteEntry("origin", "git@github.com:memento/mastodon.git", "fetch"),
            RemoteEntry("origin", "git@github.com:memento/mastodon.git", "push"),
            RemoteEntry("upstream", "https://github.com/mastodon/mastodon.git", "fetch"),
            RemoteEntry("upstream", "https://github.com/mastodon/mastodon.git", "push"),
        ],
        branches={"main": "c0", "mementomods-2025-08-24": "custom"},
        refs={
            "v4.4.3": "t443",
            "v4.4.4": "t444",
            "v4.5.0-rc1": "t450rc1",
            "origin/mementomods-2025-08-24": "custom",
            "upstream/main": "m1",
        },
        head="mementomods-2025-08-24",
        head_commit="custom",
        behind=12,
    )

    services = config.services
    http = MockHttpClient()
    if deployed is not None:
        http.responses[API_URL] = {"version": deployed}

    return Harness(
        config=config,
        console=MockConsole(),
        operator=ScriptedOperator(),
        repo=repo,
        toolchain=FakeToolchain(),
        migrations=FakeMigrations(),
        services=FakeServices(
            active={services.web, services.streaming, f"{services.worker_prefix}.service"},
            workers=[f"{services.worker_prefix}.service"],
        ),
        tootctl=FakeTootctl(),
        fork_sync=FakeForkSync(),
        http=http,
    )
