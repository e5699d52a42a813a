"""Console output abstraction.

Upgrade steps print through ``ConsoleProtocol`` and never import Rich
themselves: ``RichConsole`` renders on the operator's terminal and
``MockConsole`` records the same lines for tests.

Level messages carry a fixed prefix (``OK``, ``error:``, ``action required:``)
so that a transcript stays readable once the colors are gone, e.g. when the
pilot runs under ``script`` or its output is pasted into an issue.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Protocol

__all__ = [
    "Style",
    "ConsoleProtocol",
    "RichConsole",
    "MockConsole",
    "OutputRecord",
]


class Style(Enum):
    """Text styles for console output."""

    DEFAULT = auto()
    SUCCESS = auto()
    ERROR = auto()
    WARNING = auto()
    INFO = auto()
    ACTION = auto()  # operator has something to do outside the pilot
    DIM = auto()  # echoed commands, hints
    BOLD = auto()
    HEADER = auto()  # one per workflow step

    def __str__(self) -> str:
        return self.name.lower()


# style -> (prefix, rich style)
_LEVELS: dict[Style, tuple[str, str]] = {
    Style.SUCCESS: ("OK", "green"),
    Style.ERROR: ("error:", "red bold"),
    Style.WARNING: ("warning:", "yellow"),
    Style.INFO: ("info:", "cyan"),
    Style.ACTION: ("action required:", "yellow bold"),
}

_RICH_STYLES: dict[Style, str] = {
    **{style: rich for style, (_, rich) in _LEVELS.items()},
    Style.DEFAULT: "",
    Style.DIM: "dim",
    Style.BOLD: "bold",
    Style.HEADER: "blue bold",
}


class ConsoleProtocol(Protocol):
    def print(self, message: str, style: Style = Style.DEFAULT) -> None: ...

    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def action(self, message: str) -> None:
        """Tell the operator about a manual action they must perform."""
        ...

    def command(self, argv: list[str]) -> None:
        """Echo a command line before it runs."""
        ...

    def header(self, message: str) -> None: ...

    def newline(self) -> None: ...


class RichConsole:
    """Console backed by Rich.

    Everything is printed with markup disabled: commit subjects, instance
    URLs and announcement text routinely contain square brackets.
    """

    def __init__(self) -> None:
        # Import Rich lazily to avoid import-time dependency
        from rich.console import Console

        self._console = Console(highlight=False)

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self._console.print(message, style=_RICH_STYLES[style] or None, markup=False)

    def success(self, message: str) -> None:
        self._level(Style.SUCCESS, message)

    def error(self, message: str) -> None:
        self._level(Style.ERROR, message)

    def warning(self, message: str) -> None:
        self._level(Style.WARNING, message)

    def info(self, message: str) -> None:
        self._level(Style.INFO, message)

    def action(self, message: str) -> None:
        self._level(Style.ACTION, message)

    def command(self, argv: list[str]) -> None:
        self.print("$ " + " ".join(argv), Style.DIM)

    def header(self, message: str) -> None:
        from rich.rule import Rule

        self._console.print()
        self._console.print(Rule(message, style=_RICH_STYLES[Style.HEADER], align="left"))

    def newline(self) -> None:
        self._console.print()

    def _level(self, style: Style, message: str) -> None:
        from rich.text import Text

        prefix, rich_style = _LEVELS[style]
        self._console.print(Text.assemble((prefix, rich_style), " ", message))


@dataclass
class OutputRecord:
    message: str
    style: Style


def _empty_outputs() -> list[OutputRecord]:
    """Factory for empty outputs list (helps type inference)."""
    return []


@dataclass
class MockConsole:
    """Records output as the operator would read it, prefixes included."""

    outputs: list[OutputRecord] = field(default_factory=_empty_outputs)

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self.outputs.append(OutputRecord(message, style))

    def success(self, message: str) -> None:
        self._level(Style.SUCCESS, message)

    def error(self, message: str) -> None:
        self._level(Style.ERROR, message)

    def warning(self, message: str) -> None:
        self._level(Style.WARNING, message)

    def info(self, message: str) -> None:
        self._level(Style.INFO, message)

    def action(self, message: str) -> None:
        self._level(Style.ACTION, message)

    def command(self, argv: list[str]) -> None:
        self.print("$ " + " ".join(argv), Style.DIM)

    def header(self, message: str) -> None:
        self.print(message, Style.HEADER)

    def newline(self) -> None:
        self.print("")

    def _level(self, style: Style, message: str) -> None:
        prefix, _ = _LEVELS[style]
        self.print(f"{prefix} {message}", style)

    # Test helpers

    def clear(self) -> None:
        self.outputs.clear()

    @property
    def messages(self) -> list[str]:
        return [o.message for o in self.outputs]

    @property
    def text(self) -> str:
        return "\n".join(self.messages)

    @property
    def commands(self) -> list[str]:
        """Echoed command lines, without the ``$ `` prefix."""
        return [
            o.message[2:]
            for o in self.outputs
            if o.style == Style.DIM and o.message.startswith("$ ")
        ]

    def has_error(self) -> bool:
        return self.count(Style.ERROR) > 0

    def has_warning(self) -> bool:
        return self.count(Style.WARNING) > 0

    def has_success(self) -> bool:
        return self.count(Style.SUCCESS) > 0

    def find(self, substring: str) -> list[OutputRecord]:
        return [o for o in self.outputs if substring in o.message]

    def count(self, style: Style) -> int:
        return sum(1 for o in self.outputs if o.style == style)
