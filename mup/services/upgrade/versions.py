from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date

from mup.core.result import Err, Ok, Result
from mup.services.upgrade.errors import UpgradeError

_TAG_RE = re.compile(r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)(?:[-+.].*)?$")
_DIGITS_RE = re.compile(r"(\d+)")


@dataclass(frozen=True, slots=True, order=True)
class SemVer:
    major: int
    minor: int
    patch: int

    def to_tag(self) -> str:
        return f"v{self.major}.{self.minor}.{self.patch}"


@dataclass(frozen=True, slots=True)
class VersionTag:
    raw: str
    is_prerelease: bool
    semver: SemVer


def is_prerelease(raw: str, markers: Iterable[str]) -> bool:
    lowered = raw.lower()
    return any(m and m.lower() in lowered for m in markers)


def parse_version_tag(raw: str, markers: Iterable[str] = ()) -> VersionTag | None:
    """Parse ``vMAJOR.MINOR.PATCH[-suffix]``; None if the tag does not fit."""
    m = _TAG_RE.match(raw.strip())
    if m is None:
        return None
    return VersionTag(
        raw=raw.strip(),
        is_prerelease=is_prerelease(raw, markers),
        semver=SemVer(int(m.group(1)), int(m.group(2)), int(m.group(3))),
    )


def select_latest_stable(
    tags: Iterable[str], markers: Sequence[str]
) -> Result[str, UpgradeError]:
    """Newest tag that is neither a pre-release nor unparseable.

    >>> select_latest_stable(["v4.2.0", "v4.3.0-rc1", "v4.1.9"], ["rc"]).unwrap()
    'v4.2.0'
    """
    best: VersionTag | None = None
    for raw in tags:
        if is_prerelease(raw, markers):
            continue
        parsed = parse_version_tag(raw, markers)
        if parsed is None:
            continue
        if best is None or parsed.semver > best.semver:
            best = parsed

    if best is None:
        return Err(
            UpgradeError(
                kind="detection_failed",
                message="no stable version tag found",
                hint="Fetch tags from upstream, or enter the tag manually.",
            )
        )
    return Ok(best.raw)


def natural_key(text: str) -> tuple[tuple[int, int, str], ...]:
    """Sort key comparing digit runs numerically (``sort -V`` style)."""
    key: list[tuple[int, int, str]] = []
    for part in _DIGITS_RE.split(text):
        if not part:
            continue
        if part.isdigit():
            key.append((0, int(part), ""))
        else:
            key.append((1, 0, part))
    return tuple(key)


def select_latest_branch(
    branches: Iterable[str], *, prefix: str, remote: str | None = None
) -> Result[str, UpgradeError]:
    """Newest branch named ``<prefix><suffix>``, by natural order of the suffix.

    With ``remote`` set, only ``remote/...`` entries are considered and the
    qualifier is stripped from the returned name.
    """
    best: tuple[tuple[tuple[int, int, str], ...], str] | None = None
    qualifier = f"{remote}/" if remote else None

    for raw in branches:
        name = raw.strip()
        if qualifier is not None:
            if not name.startswith(qualifier):
                continue
            name = name[len(qualifier) :]
        if not name.startswith(prefix):
            continue
        suffix = name[len(prefix) :]
        if not suffix:
            continue
        key = natural_key(suffix)
        if best is None or key > best[0]:
            best = (key, name)

    if best is None:
        where = f" on {remote}" if remote else ""
        return Err(
            UpgradeError(
                kind="detection_failed",
                message=f"no '{prefix}*' branch found{where}",
                hint="Push the branch from the development upgrade first, or enter it manually.",
            )
        )
    return Ok(best[1])


def format_branch_name(prefix: str, day: date) -> str:
    """Customization branch for an upgrade made on ``day``."""
    return f"{prefix}{day.isoformat()}"


def extract_deployed_version(version_text: str, prefix: str) -> str | None:
    """Find the customization branch name inside an instance version string.

    >>> extract_deployed_version("4.4.3+mementomods-2025-08-24", "mementomods-")
    'mementomods-2025-08-24'
    """
    m = re.search(re.escape(prefix) + r"[0-9][0-9-]*", version_text)
    if m is None:
        return None
    return m.group(0).rstrip("-")
