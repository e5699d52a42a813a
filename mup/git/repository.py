"""Git repository abstraction.

This module provides the Repository class for the git operations an upgrade
needs on the instance checkout. All operations return Result types.

Usage:
    repo = Repository(Path("/home/mastodon/live"))

    match repo.count_commits("HEAD..upstream/main"):
        case Ok(count):
            print(f"{count} commits behind")
        case Err(e):
            print(f"Error: {e.message}")
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from mup.core.result import Err, Ok, Result
from mup.git.remotes import RemoteEntry, parse_remote_listing
from mup.platform.process import ProcessError
from mup.platform.process import run as run_process

_GIT_TIMEOUT_SECONDS = 60.0
_GIT_NETWORK_TIMEOUT_SECONDS = 10 * 60.0
_NETWORK_COMMANDS = frozenset({"fetch", "pull", "push", "clone"})

__all__ = [
    "CommitSummary",
    "GitError",
    "Repository",
    "VersionControl",
]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git command that failed
        message: Error message
        returncode: Process return code
        conflict: True when a merge stopped on conflicts
    """

    command: str
    message: str
    returncode: int = 1
    conflict: bool = False


@dataclass(frozen=True, slots=True)
class CommitSummary:
    """One commit as shown to the operator."""

    short_sha: str
    subject: str
    relative_date: str


class VersionControl(Protocol):
    """The subset of Repository the upgrade workflow drives."""

    path: Path

    def remotes(self) -> Result[list[RemoteEntry], GitError]: ...

    def fetch(self, remote: str, ref: str | None = None) -> Result[None, GitError]: ...

    def fetch_all(self) -> Result[None, GitError]: ...

    def count_commits(self, revision_range: str) -> Result[int, GitError]: ...

    def tags(self, pattern: str = "v*") -> Result[list[str], GitError]: ...

    def remote_branches(self) -> Result[list[str], GitError]: ...

    def branch_exists(self, name: str) -> bool: ...

    def head_sha(self) -> Result[str, GitError]: ...

    def has_unstaged_changes(self) -> Result[bool, GitError]: ...

    def status_short(self) -> Result[str, GitError]: ...

    def stash(self, message: str) -> Result[None, GitError]: ...

    def checkout(self, ref: str) -> Result[None, GitError]: ...

    def checkout_tracking(self, branch: str, remote: str) -> Result[None, GitError]: ...

    def create_branch(self, name: str) -> Result[None, GitError]: ...

    def delete_branch(self, name: str) -> Result[None, GitError]: ...

    def pull(self, remote: str, ref: str, *, rebase: bool = False) -> Result[None, GitError]: ...

    def merge(self, ref: str) -> Result[None, GitError]: ...

    def merge_abort(self) -> Result[None, GitError]: ...

    def push(self, remote: str, branch: str) -> Result[None, GitError]: ...

    def head_summary(self) -> Result[CommitSummary, GitError]: ...

    def log_oneline(self, count: int = 10) -> Result[list[str], GitError]: ...


class Repository:
    """Git repository abstraction.

    Attributes:
        path: Path to the repository root
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        """Check if this is a valid git repository."""
        return (self.path / ".git").exists()

    # Remotes and refs -------------------------------------------------------

    def remotes(self) -> Result[list[RemoteEntry], GitError]:
        """List remotes (``git remote -v``)."""
        return self._call(["remote", "-v"]).map(parse_remote_listing)

    def fetch(self, remote: str, ref: str | None = None) -> Result[None, GitError]:
        args = ["fetch", remote, "--quiet"]
        if ref is not None:
            args.insert(2, ref)
        return self._call(args).map(_discard)

    def fetch_all(self) -> Result[None, GitError]:
        return self._call(["fetch", "--all", "--quiet"]).map(_discard)

    def count_commits(self, revision_range: str) -> Result[int, GitError]:
        """Count commits in a range such as ``HEAD..upstream/main``."""
        result = self._call(["rev-list", "--count", revision_range])
        if isinstance(result, Err):
            return result
        try:
            return Ok(int(result.value.strip()))
        except ValueError:
            return Err(
                GitError(command="rev-list", message=f"unexpected output: {result.value!r}")
            )

    def tags(self, pattern: str = "v*") -> Result[list[str], GitError]:
        return self._call(["tag", "-l", pattern]).map(_lines)

    def remote_branches(self) -> Result[list[str], GitError]:
        """Remote-tracking branches as ``remote/name`` (symbolic refs skipped)."""
        result = self._call(["branch", "-r"])
        if isinstance(result, Err):
            return result
        return Ok([ln for ln in _lines(result.value) if "->" not in ln])

    def branch_exists(self, name: str) -> bool:
        result = self._run(["show-ref", "--verify", "--quiet", f"refs/heads/{name}"])
        return isinstance(result, Ok)

    def rev_parse(self, ref: str) -> Result[str, GitError]:
        return self._call(["rev-parse", ref]).map(str.strip)

    def head_sha(self) -> Result[str, GitError]:
        return self.rev_parse("HEAD")

    # Working tree -----------------------------------------------------------

    def has_unstaged_changes(self) -> Result[bool, GitError]:
        """True if tracked files differ from the index (``git diff-files``)."""
        result = self._run(["diff-files", "--quiet"])
        match result:
            case Ok(_):
                return Ok(False)
            case Err(e) if e.returncode == 1:
                return Ok(True)
            case Err(e):
                return Err(_to_git_error("diff-files", e))

    def status_short(self) -> Result[str, GitError]:
        return self._call(["status", "--short"]).map(str.rstrip)

    def stash(self, message: str) -> Result[None, GitError]:
        return self._call(["stash", "push", "-m", message]).map(_discard)

    # Branches ---------------------------------------------------------------

    def checkout(self, ref: str) -> Result[None, GitError]:
        return self._call(["checkout", ref]).map(_discard)

    def checkout_tracking(self, branch: str, remote: str) -> Result[None, GitError]:
        """Check out ``branch`` reset to ``remote/branch`` and tracking it."""
        return self._call(["checkout", "-B", branch, "--track", f"{remote}/{branch}"]).map(
            _discard
        )

    def create_branch(self, name: str) -> Result[None, GitError]:
        return self._call(["branch", name]).map(_discard)

    def delete_branch(self, name: str) -> Result[None, GitError]:
        return self._call(["branch", "-D", name]).map(_discard)

    def pull(self, remote: str, ref: str, *, rebase: bool = False) -> Result[None, GitError]:
        args = ["pull", remote, ref]
        if rebase:
            args.append("--rebase")
        return self._call(args).map(_discard)

    def merge(self, ref: str) -> Result[None, GitError]:
        """Merge ``ref`` into HEAD.

        Returns Err with ``conflict=True`` when git stopped on conflicts; the
        repository is then mid-merge and the caller must resolve or abort.
        """
        result = self._run(["merge", "--no-edit", ref])
        match result:
            case Ok(_):
                return Ok(None)
            case Err(e):
                conflict = "CONFLICT" in e.stdout or "Automatic merge failed" in e.output
                return Err(
                    GitError(
                        command="merge",
                        message=e.stderr.strip() or e.stdout.strip() or "merge failed",
                        returncode=e.returncode,
                        conflict=conflict,
                    )
                )

    def merge_abort(self) -> Result[None, GitError]:
        return self._call(["merge", "--abort"]).map(_discard)

    def push(self, remote: str, branch: str) -> Result[None, GitError]:
        return self._call(["push", "--set-upstream", remote, branch]).map(_discard)

    # History ----------------------------------------------------------------

    def head_summary(self) -> Result[CommitSummary, GitError]:
        result = self._call(["log", "-1", "--pretty=format:%h%x09%s%x09%cr", "HEAD"])
        if isinstance(result, Err):
            return result
        parts = result.value.strip().split("\t")
        if len(parts) != 3:
            return Err(GitError(command="log", message=f"unexpected output: {result.value!r}"))
        return Ok(CommitSummary(short_sha=parts[0], subject=parts[1], relative_date=parts[2]))

    def log_oneline(self, count: int = 10) -> Result[list[str], GitError]:
        return self._call(["log", "--oneline", f"-{count}"]).map(_lines)

    # Internals --------------------------------------------------------------

    def _call(self, args: list[str]) -> Result[str, GitError]:
        """Run git and translate process failures into GitError."""
        return self._run(args).map_err(lambda e: _to_git_error(args[0], e))

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        """Run a git command in this repository."""
        command = args[0] if args else ""
        timeout = (
            _GIT_NETWORK_TIMEOUT_SECONDS if command in _NETWORK_COMMANDS else _GIT_TIMEOUT_SECONDS
        )
        return run_process(["git", "-C", str(self.path), *args], cwd=self.path, timeout=timeout)


def _to_git_error(command: str, e: ProcessError) -> GitError:
    return GitError(
        command=command,
        message=e.stderr.strip() or e.stdout.strip() or f"git {command} failed",
        returncode=e.returncode,
    )


def _lines(output: str) -> list[str]:
    return [ln.strip() for ln in output.splitlines() if ln.strip()]


def _discard(_: object) -> None:
    return None
