"""Tests for mup.git.remotes module."""

from __future__ import annotations

from mup.git.remotes import RemoteEntry, classify_remotes, parse_remote_listing

_LISTING = """\
origin\tgit@github.com:memento/mastodon.git (fetch)
origin\tgit@github.com:memento/mastodon.git (push)
upstream\thttps://github.com/mastodon/mastodon.git (fetch)
upstream\thttps://github.com/mastodon/mastodon.git (push)
garbage line
"""

_UPSTREAM_IDS = ("mastodon/mastodon", "tootsuite/mastodon")


class TestParseRemoteListing:
    def test_parses_fetch_and_push(self) -> None:
        entries = parse_remote_listing(_LISTING)

        assert len(entries) == 4
        assert entries[0] == RemoteEntry(
            name="origin", url="git@github.com:memento/mastodon.git", direction="fetch"
        )
        assert entries[1].direction == "push"

    def test_skips_unknown_kinds(self) -> None:
        assert parse_remote_listing("origin url (mirror)\n") == []

    def test_empty(self) -> None:
        assert parse_remote_listing("") == []


class TestClassifyRemotes:
    def test_fork_and_upstream(self) -> None:
        result = classify_remotes(
            parse_remote_listing(_LISTING), fork="memento/mastodon", upstream_ids=_UPSTREAM_IDS
        )

        assert result.fork == "origin"
        assert result.upstream == "upstream"
        assert result.complete

    def test_push_entries_are_ignored(self) -> None:
        entries = [RemoteEntry("origin", "git@github.com:memento/mastodon.git", "push")]

        result = classify_remotes(entries, fork="memento/mastodon", upstream_ids=_UPSTREAM_IDS)

        assert result.fork is None
        assert not result.complete

    def test_fork_takes_priority_over_upstream(self) -> None:
        # A fork named like the upstream must not be taken as the upstream.
        entries = [RemoteEntry("mine", "https://github.com/mastodon/mastodon-fork.git", "fetch")]

        result = classify_remotes(
            entries, fork="mastodon/mastodon-fork", upstream_ids=_UPSTREAM_IDS
        )

        assert result.fork == "mine"
        assert result.upstream is None

    def test_first_match_wins(self) -> None:
        entries = [
            RemoteEntry("a", "https://github.com/tootsuite/mastodon.git", "fetch"),
            RemoteEntry("b", "https://github.com/mastodon/mastodon.git", "fetch"),
        ]

        result = classify_remotes(entries, fork="memento/mastodon", upstream_ids=_UPSTREAM_IDS)

        assert result.upstream == "a"

    def test_empty_identifier_never_matches(self) -> None:
        entries = parse_remote_listing(_LISTING)

        result = classify_remotes(entries, fork="", upstream_ids=("",))

        assert result.fork is None
        assert result.upstream is None

    def test_classification_is_idempotent(self) -> None:
        entries = parse_remote_listing(_LISTING)
        snapshot = list(entries)

        first = classify_remotes(entries, fork="memento/mastodon", upstream_ids=_UPSTREAM_IDS)
        second = classify_remotes(entries, fork="memento/mastodon", upstream_ids=_UPSTREAM_IDS)

        assert first == second
        assert entries == snapshot
