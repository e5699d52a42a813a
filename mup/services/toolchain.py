"""Dependency and asset build toolchain (rbenv, bundler, corepack/yarn, rails)."""

from __future__ import annotations

import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Protocol

from mup.core.result import Err, Ok, Result
from mup.output.console import ConsoleProtocol, Style
from mup.platform.process import ProcessError
from mup.platform.process import run as run_process
from mup.platform.process import run_streaming

__all__ = [
    "BuildCondition",
    "BuildFailure",
    "KNOWN_CONDITIONS",
    "RailsToolchain",
    "Toolchain",
    "classify_build_output",
    "parse_bundled_with",
]

BuildCondition = Literal["libvips"]


@dataclass(frozen=True, slots=True)
class KnownCondition:
    marker: str
    summary: str
    remediation: str


KNOWN_CONDITIONS: dict[BuildCondition, KnownCondition] = {
    "libvips": KnownCondition(
        marker="Incompatible libvips version",
        summary="libvips version incompatible",
        remediation=(
            "Install libvips >= 8.13 from source: "
            "https://github.com/libvips/libvips/wiki/Build-for-Ubuntu#building-from-source"
        ),
    ),
}


@dataclass(frozen=True, slots=True)
class BuildFailure:
    """A build command that exited non-zero."""

    command: str
    returncode: int
    condition: BuildCondition | None
    output_tail: str

    @property
    def recognized(self) -> bool:
        return self.condition is not None


def classify_build_output(output: str) -> BuildCondition | None:
    for name, known in KNOWN_CONDITIONS.items():
        if known.marker in output:
            return name
    return None


_BUNDLED_WITH_RE = re.compile(r"^BUNDLED WITH\s*\n\s*(\S+)", re.MULTILINE)


def parse_bundled_with(lockfile: str) -> str | None:
    """Bundler version recorded at the end of Gemfile.lock."""
    m = _BUNDLED_WITH_RE.search(lockfile)
    return m.group(1) if m else None


class Toolchain(Protocol):
    def required_ruby(self) -> str | None: ...

    def ruby_installed(self, version: str) -> bool: ...

    def update_ruby_build(self) -> Result[None, ProcessError]: ...

    def install_ruby(self, version: str) -> Result[None, ProcessError]: ...

    def node_version(self) -> str | None: ...

    def enable_corepack(self) -> Result[None, ProcessError]: ...

    def ensure_bundler(self) -> Result[str | None, ProcessError]: ...

    def clean(self) -> Result[None, ProcessError]: ...

    def install(self) -> Result[None, BuildFailure]: ...

    def precompile(self) -> Result[None, BuildFailure]: ...


class RailsToolchain:
    """Runs the build inside the instance checkout."""

    def __init__(
        self,
        *,
        instance_dir: Path,
        rails_env: str,
        console: ConsoleProtocol,
        home: Path,
    ) -> None:
        self._dir = instance_dir
        self._rails_env = rails_env
        self._console = console
        self._home = home

    # Runtimes ----------------------------------------------------------------

    def required_ruby(self) -> str | None:
        path = self._dir / ".ruby-version"
        try:
            value = path.read_text(encoding="utf-8").strip()
        except OSError:
            return None
        return value or None

    def ruby_installed(self, version: str) -> bool:
        result = run_process(["rbenv", "versions", "--bare"], cwd=self._dir)
        if isinstance(result, Err):
            return False
        return version in {ln.strip() for ln in result.value.splitlines()}

    def update_ruby_build(self) -> Result[None, ProcessError]:
        plugin = self._home / ".rbenv" / "plugins" / "ruby-build"
        return self._run(["git", "-C", str(plugin), "pull", "--quiet"])

    def install_ruby(self, version: str) -> Result[None, ProcessError]:
        return self._stream(["rbenv", "install", "--skip-existing", version])

    def node_version(self) -> str | None:
        result = run_process(["node", "--version"], cwd=self._dir)
        if isinstance(result, Err):
            return None
        return result.value.strip().removeprefix("v") or None

    def enable_corepack(self) -> Result[None, ProcessError]:
        if shutil.which("corepack") is None:
            installed = self._run(["npm", "install", "-g", "corepack"])
            if isinstance(installed, Err):
                return installed
        return self._run(["corepack", "enable"])

    def ensure_bundler(self) -> Result[str | None, ProcessError]:
        """Install the bundler version Gemfile.lock asks for, if missing."""
        try:
            lock = (self._dir / "Gemfile.lock").read_text(encoding="utf-8")
        except OSError:
            return Ok(None)
        version = parse_bundled_with(lock)
        if version is None:
            return Ok(None)
        present = run_process(["gem", "list", "bundler", "-i", "-v", version], cwd=self._dir)
        if isinstance(present, Ok):
            return Ok(version)
        installed = self._run(["gem", "install", "bundler", "-v", version])
        if isinstance(installed, Err):
            return installed
        return Ok(version)

    # Build -------------------------------------------------------------------

    def clean(self) -> Result[None, ProcessError]:
        cleaned = self._run(["yarn", "cache", "clean"])
        if isinstance(cleaned, Err):
            return cleaned
        node_modules = self._dir / "node_modules"
        if node_modules.exists():
            self._console.command(["rm", "-rf", "node_modules"])
            try:
                shutil.rmtree(node_modules)
            except OSError as e:
                return Err(
                    ProcessError(
                        command=("rm", "-rf", str(node_modules)),
                        returncode=-1,
                        stdout="",
                        stderr=str(e),
                    )
                )
        return Ok(None)

    def install(self) -> Result[None, BuildFailure]:
        bundled = self._build_step(["bundle", "install"])
        if isinstance(bundled, Err):
            return bundled
        return self._build_step(
            ["yarn", "install", "--immutable"],
            env={"COREPACK_ENABLE_DOWNLOAD_PROMPT": "0"},
        )

    def precompile(self) -> Result[None, BuildFailure]:
        return self._build_step(
            ["bundle", "exec", "rails", "assets:precompile"],
            env={"RAILS_ENV": self._rails_env},
        )

    # Internals ---------------------------------------------------------------

    def _run(self, argv: list[str]) -> Result[None, ProcessError]:
        self._console.command(argv)
        return run_process(argv, cwd=self._dir).map(lambda _: None)

    def _stream(
        self, argv: list[str], env: dict[str, str] | None = None
    ) -> Result[None, ProcessError]:
        self._console.command(argv)
        return run_streaming(argv, cwd=self._dir, env=env, on_line=self._echo).map(
            lambda _: None
        )

    def _build_step(
        self, argv: list[str], env: dict[str, str] | None = None
    ) -> Result[None, BuildFailure]:
        result = self._stream(argv, env)
        if isinstance(result, Ok):
            return result
        error = result.error
        return Err(
            BuildFailure(
                command=" ".join(argv),
                returncode=error.returncode,
                condition=classify_build_output(error.output),
                output_tail=error.output,
            )
        )

    def _echo(self, line: str) -> None:
        self._console.print(line, Style.DIM)
