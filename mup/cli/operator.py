from __future__ import annotations

from collections.abc import Sequence

from mup.output.console import ConsoleProtocol, Style
from mup.services.upgrade.operator import Choice


class TerminalOperator:
    """Operator answering on the controlling terminal through rich prompts.

    Questions are plain text: instance URLs and commit subjects may contain
    square brackets that rich would otherwise read as markup.
    """

    def __init__(self, console: ConsoleProtocol) -> None:
        # Import Rich lazily to avoid import-time dependency
        from rich.console import Console

        self._console = console
        self._term = Console(highlight=False)

    def confirm(self, question: str) -> bool:
        from rich.prompt import Confirm
        from rich.text import Text

        return Confirm.ask(Text(question), console=self._term, default=False)

    def acknowledge(self, action: str) -> None:
        from rich.prompt import Prompt
        from rich.text import Text

        self._console.action(action)
        Prompt.ask(
            Text("Press Enter when done"), console=self._term, default="", show_default=False
        )

    def ask(self, question: str) -> str:
        from rich.prompt import Prompt
        from rich.text import Text

        return Prompt.ask(Text(question), console=self._term, default="", show_default=False)

    def choose[T](self, question: str, choices: Sequence[Choice[T]]) -> T:
        from rich.prompt import Prompt
        from rich.text import Text

        keys: list[str] = []
        for index, choice in enumerate(choices, start=1):
            keys.append(str(index))
            self._console.print(f"{index}. {choice.label}")
            if choice.detail:
                self._console.print(f"   {choice.detail}", Style.DIM)
        picked = Prompt.ask(Text(question), console=self._term, choices=keys)
        return choices[int(picked) - 1].value
