"""Platform abstraction layer."""

from .files import (
    append_line,
    atomic_write_text,
)
from .paths import (
    expand,
    home,
    user_config_dir,
)
from .process import (
    ProcessError,
    run,
    run_silent,
    run_streaming,
    watch,
)

__all__ = [
    # files
    "append_line",
    "atomic_write_text",
    # paths
    "expand",
    "home",
    "user_config_dir",
    # process
    "ProcessError",
    "run",
    "run_silent",
    "run_streaming",
    "watch",
]
