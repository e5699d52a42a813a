"""Operator decisions.

Every prompt of an upgrade goes through the Operator protocol, so a run can be
driven by a person at a terminal (``mup.cli.operator.TerminalOperator``) or
by scripted answers in tests.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Literal, Protocol

__all__ = [
    "Choice",
    "Operator",
    "PromptRecord",
    "ScriptedOperator",
    "UnexpectedPrompt",
]


@dataclass(frozen=True, slots=True)
class Choice[T]:
    value: T
    label: str
    detail: str | None = None


class Operator(Protocol):
    def confirm(self, question: str) -> bool:
        """Yes/no question; never defaults to yes."""
        ...

    def acknowledge(self, action: str) -> None:
        """Block until the operator reports a manual action as done."""
        ...

    def ask(self, question: str) -> str:
        """Free-text answer (may be empty)."""
        ...

    def choose[T](self, question: str, choices: Sequence[Choice[T]]) -> T:
        """Pick exactly one of ``choices``."""
        ...


class UnexpectedPrompt(AssertionError):
    """A scripted operator was asked something it has no answer for."""


@dataclass(frozen=True, slots=True)
class PromptRecord:
    kind: Literal["confirm", "acknowledge", "ask", "choose"]
    question: str
    answer: object


def _lookup[V](rules: Mapping[str, V], question: str) -> tuple[bool, V | None]:
    for needle, answer in rules.items():
        if needle in question:
            return True, answer
    return False, None


@dataclass
class ScriptedOperator:
    """Operator answering from rules keyed by a substring of the question.

    The first rule whose key occurs in the question wins. Confirmations
    without a rule fall back to ``default_confirm``; if that is None the
    prompt raises UnexpectedPrompt. Every prompt is recorded in ``transcript``.
    """

    confirms: dict[str, bool] = field(default_factory=dict)
    choices: dict[str, object] = field(default_factory=dict)
    answers: dict[str, str] = field(default_factory=dict)
    default_confirm: bool | None = True
    transcript: list[PromptRecord] = field(default_factory=list)

    def confirm(self, question: str) -> bool:
        found, answer = _lookup(self.confirms, question)
        if not found:
            if self.default_confirm is None:
                raise UnexpectedPrompt(f"no scripted answer for: {question}")
            answer = self.default_confirm
        assert answer is not None
        self.transcript.append(PromptRecord("confirm", question, answer))
        return answer

    def acknowledge(self, action: str) -> None:
        self.transcript.append(PromptRecord("acknowledge", action, None))

    def ask(self, question: str) -> str:
        found, answer = _lookup(self.answers, question)
        if not found or answer is None:
            raise UnexpectedPrompt(f"no scripted answer for: {question}")
        self.transcript.append(PromptRecord("ask", question, answer))
        return answer

    def choose[T](self, question: str, choices: Sequence[Choice[T]]) -> T:
        found, wanted = _lookup(self.choices, question)
        if not found:
            raise UnexpectedPrompt(f"no scripted choice for: {question}")
        for choice in choices:
            if choice.value == wanted:
                self.transcript.append(PromptRecord("choose", question, choice.value))
                return choice.value
        raise UnexpectedPrompt(f"scripted choice {wanted!r} not offered for: {question}")

    # Test helpers

    def asked(self, substring: str) -> bool:
        return any(substring in r.question for r in self.transcript)

    def confirmed(self, substring: str) -> bool | None:
        for r in self.transcript:
            if r.kind == "confirm" and substring in r.question:
                return bool(r.answer)
        return None
