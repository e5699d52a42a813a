"""Process exit codes.

Wrapper scripts (cron, a deploy hook) read these to tell an operator abort
from a broken build, so the numbers must not change.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    OK = 0  # also: the operator chose not to start
    USER_ERROR = 1  # operator abort, unresolved merge conflict
    ENV_ERROR = 2  # config, host or repository not as expected
    BUILD_ERROR = 3  # bundle, assets or migrations failed
    NETWORK_ERROR = 4  # remotes unreachable
    INTERRUPTED = 130  # Ctrl-C, same as a shell

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_failure(self) -> bool:
        return self is not ErrorCode.OK
