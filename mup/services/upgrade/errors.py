from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from mup.core.errors import ErrorCode

UpgradeErrorKind = Literal[
    "configuration_missing",
    "detection_failed",
    "external_command_failed",
    "conflict_detected",
    "permission_denied",
    "resource_insufficient",
    "aborted",
    "cancelled",
]

_EXIT_CODES: dict[UpgradeErrorKind, ErrorCode] = {
    "cancelled": ErrorCode.OK,
    "aborted": ErrorCode.USER_ERROR,
    "conflict_detected": ErrorCode.USER_ERROR,
    "configuration_missing": ErrorCode.ENV_ERROR,
    "permission_denied": ErrorCode.ENV_ERROR,
    "resource_insufficient": ErrorCode.ENV_ERROR,
    "detection_failed": ErrorCode.ENV_ERROR,
    "external_command_failed": ErrorCode.BUILD_ERROR,
}


@dataclass(frozen=True, slots=True)
class UpgradeError:
    kind: UpgradeErrorKind
    message: str
    hint: str | None = None

    @property
    def exit_code(self) -> ErrorCode:
        return _EXIT_CODES[self.kind]

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message


def aborted(message: str, hint: str | None = None) -> UpgradeError:
    return UpgradeError(kind="aborted", message=message, hint=hint)


def cancelled(message: str = "upgrade cancelled") -> UpgradeError:
    return UpgradeError(kind="cancelled", message=message)


def command_failed(what: str, detail: str, hint: str | None = None) -> UpgradeError:
    return UpgradeError(
        kind="external_command_failed",
        message=f"{what}: {detail}" if detail else what,
        hint=hint,
    )
