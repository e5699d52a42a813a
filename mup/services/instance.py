"""Deployed version lookup through the instance's public API."""

from __future__ import annotations

from dataclasses import dataclass

from mup.core.result import Err, Ok, Result
from mup.core.structured import get_str
from mup.platform.http import HttpClient
from mup.services.upgrade.versions import extract_deployed_version

__all__ = ["InstanceClient", "InstanceError"]


@dataclass(frozen=True, slots=True)
class InstanceError:
    message: str


class InstanceClient:
    """Reads ``/api/v1/instance`` and extracts the deployed customization branch."""

    def __init__(self, *, http: HttpClient, api_url: str, branch_prefix: str) -> None:
        self._http = http
        self._api_url = api_url
        self._prefix = branch_prefix

    def version_string(self) -> Result[str, InstanceError]:
        result = self._http.get_json(self._api_url)
        if isinstance(result, Err):
            return Err(InstanceError(message=str(result.error)))
        version = get_str(result.value, "version")
        if version is None:
            return Err(InstanceError(message=f"no version field in {self._api_url}"))
        return Ok(version)

    def deployed_version(self) -> Result[str, InstanceError]:
        """Customization branch currently deployed, e.g. ``mementomods-2025-08-24``."""
        version = self.version_string()
        if isinstance(version, Err):
            return version
        branch = extract_deployed_version(version.value, self._prefix)
        if branch is None:
            return Err(
                InstanceError(
                    message=f"version '{version.value}' does not name a '{self._prefix}*' branch"
                )
            )
        return Ok(branch)
