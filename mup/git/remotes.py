"""Remote classification.

Works out which configured remote is the operator's fork and which one is
the upstream project, from the output of ``git remote -v``. Pure functions:
no git calls happen here.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Literal

__all__ = [
    "Direction",
    "RemoteClassification",
    "RemoteEntry",
    "classify_remotes",
    "parse_remote_listing",
]

Direction = Literal["fetch", "push"]


@dataclass(frozen=True, slots=True)
class RemoteEntry:
    """One line of ``git remote -v``."""

    name: str
    url: str
    direction: Direction


@dataclass(frozen=True, slots=True)
class RemoteClassification:
    """Remote names per role; either may be missing."""

    fork: str | None = None
    upstream: str | None = None

    @property
    def complete(self) -> bool:
        return self.fork is not None and self.upstream is not None


def parse_remote_listing(text: str) -> list[RemoteEntry]:
    """Parse ``git remote -v`` output, skipping lines that do not fit.

    Example line: ``origin\thttps://github.com/org/mastodon.git (fetch)``
    """
    entries: list[RemoteEntry] = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) != 3:
            continue
        name, url, kind = parts
        if kind == "(fetch)":
            entries.append(RemoteEntry(name=name, url=url, direction="fetch"))
        elif kind == "(push)":
            entries.append(RemoteEntry(name=name, url=url, direction="push"))
    return entries


def classify_remotes(
    entries: Iterable[RemoteEntry],
    *,
    fork: str,
    upstream_ids: Sequence[str],
) -> RemoteClassification:
    """Assign fork and upstream roles by URL substring match.

    Only fetch entries count. The fork identifier is tried first, so a URL
    that matches both is the fork. Within a role the first matching remote
    wins. An empty identifier never matches.
    """
    fork_name: str | None = None
    upstream_name: str | None = None

    for entry in entries:
        if entry.direction != "fetch":
            continue
        if fork and fork in entry.url:
            if fork_name is None:
                fork_name = entry.name
            continue
        if any(ident and ident in entry.url for ident in upstream_ids):
            if upstream_name is None:
                upstream_name = entry.name

    return RemoteClassification(fork=fork_name, upstream=upstream_name)
