"""Git operations module.

- remotes: pure parsing/classification of ``git remote -v`` output
- Repository: operations on the instance checkout

Usage:
    from mup.git import Repository, classify_remotes

    repo = Repository(Path("/home/mastodon/live"))
    entries = repo.remotes().unwrap_or([])
    roles = classify_remotes(entries, fork="org/mastodon", upstream_ids=["mastodon/mastodon"])
"""

from mup.git.remotes import (
    RemoteClassification,
    RemoteEntry,
    classify_remotes,
    parse_remote_listing,
)
from mup.git.repository import (
    CommitSummary,
    GitError,
    Repository,
    VersionControl,
)

__all__ = [
    # Remotes
    "RemoteClassification",
    "RemoteEntry",
    "classify_remotes",
    "parse_remote_listing",
    # Repository
    "CommitSummary",
    "GitError",
    "Repository",
    "VersionControl",
]
