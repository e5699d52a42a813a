"""Version metadata in the instance's ``.env.production``.

Mastodon shows ``MASTODON_VERSION_METADATA`` next to its version number and
builds the "source code" link from ``GITHUB_REPOSITORY``; both are rewritten
to point at the deployed customization branch.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from mup.core.result import Err, Ok, Result
from mup.platform.files import atomic_write_text

__all__ = [
    "BIRD_UI_MARKER",
    "MetadataUpdate",
    "compare_reference",
    "update_env_text",
    "version_metadata",
    "write_version_metadata",
]

BIRD_UI_MARKER = Path("app/javascript/styles/mastodon-bird-ui/layout-single-column.scss")
_BIRD_UI_SUFFIX = " + Mastodon Bird UI"


@dataclass(frozen=True, slots=True)
class MetadataUpdate:
    path: Path
    values: dict[str, str]
    added: tuple[str, ...]


def version_metadata(branch: str, *, bird_ui: bool) -> str:
    label = f"{branch}{_BIRD_UI_SUFFIX}" if bird_ui else branch
    return f"'{label}'"


def compare_reference(*, upstream: str, main_branch: str, fork: str, branch: str) -> str:
    """``org/repo/compare/main...fork-org/repo:branch`` for the source link."""
    return f"{upstream}/compare/{main_branch}...{fork}:{branch}"


def update_env_text(text: str, updates: Mapping[str, str]) -> tuple[str, tuple[str, ...]]:
    """Set ``KEY=value`` lines, appending keys that are not present yet.

    Returns the new text and the keys that had to be appended.
    """
    lines = text.splitlines()
    seen: set[str] = set()
    for i, line in enumerate(lines):
        for key, value in updates.items():
            if re.match(rf"^{re.escape(key)}=", line):
                lines[i] = f"{key}={value}"
                seen.add(key)

    added = tuple(k for k in updates if k not in seen)
    lines.extend(f"{key}={updates[key]}" for key in added)
    return "\n".join(lines) + "\n", added


def write_version_metadata(
    *,
    instance_dir: Path,
    env_file: str,
    branch: str,
    upstream: str,
    main_branch: str,
    fork: str,
) -> Result[MetadataUpdate, str]:
    path = instance_dir / env_file
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Err(f"{env_file} not found in {instance_dir}")
    except OSError as e:
        return Err(f"cannot read {path}: {e}")

    values = {
        "MASTODON_VERSION_METADATA": version_metadata(
            branch, bird_ui=(instance_dir / BIRD_UI_MARKER).is_file()
        ),
        "GITHUB_REPOSITORY": compare_reference(
            upstream=upstream, main_branch=main_branch, fork=fork, branch=branch
        ),
    }
    new_text, added = update_env_text(text, values)
    try:
        atomic_write_text(path, new_text)
    except OSError as e:
        return Err(f"cannot write {path}: {e}")
    return Ok(MetadataUpdate(path=path, values=values, added=added))
