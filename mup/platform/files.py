"""Filesystem helpers for the instance's own files (.env.production, the upgrade log)."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

__all__ = ["append_line", "atomic_write_text"]


def atomic_write_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``content`` in one rename.

    Mastodon never sees a half-written env file, and an existing file keeps
    its permission bits (env files are usually 0600).
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding=encoding,
        newline="",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    ) as handle:
        staged = Path(handle.name)
        try:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        except BaseException:
            staged.unlink(missing_ok=True)
            raise

    try:
        if path.exists():
            shutil.copymode(path, staged)
        os.replace(staged, path)
    finally:
        staged.unlink(missing_ok=True)


def append_line(path: Path, line: str, *, encoding: str = "utf-8") -> None:
    """Append ``line`` plus exactly one newline, creating the file if needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding=encoding) as handle:
        handle.write(line.rstrip("\n") + "\n")
