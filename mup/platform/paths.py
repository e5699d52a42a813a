"""User-level path utilities.

The upgrade pilot only targets Linux hosts managed by systemd, so only the
XDG layout is handled here.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

__all__ = [
    "expand",
    "home",
    "user_config_dir",
]

APP_NAME = "mup"


@lru_cache(maxsize=1)
def home() -> Path:
    """Get the user's home directory (HOME first, for sudo -u and containers)."""
    home_env = os.environ.get("HOME")
    if home_env:
        return Path(home_env)
    return Path.home()


@lru_cache(maxsize=1)
def user_config_dir() -> Path:
    """Get the user-level configuration directory (~/.config/mup)."""
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / APP_NAME
    return home() / ".config" / APP_NAME


def expand(value: str) -> Path:
    """Expand ``~`` and environment variables in a configured path."""
    expanded = os.path.expandvars(value)
    if expanded == "~" or expanded.startswith("~/"):
        return home() / expanded[2:]
    return Path(expanded)


def clear_caches() -> None:
    """Clear all cached paths.

    Useful for testing when environment variables change.
    """
    home.cache_clear()
    user_config_dir.cache_clear()
