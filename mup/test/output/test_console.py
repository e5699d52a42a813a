"""Tests for mup.output.console module."""

from __future__ import annotations

from mup.output.console import (
    ConsoleProtocol,
    MockConsole,
    OutputRecord,
    RichConsole,
    Style,
)


class TestStyle:
    def test_str_conversion(self) -> None:
        assert str(Style.SUCCESS) == "success"
        assert str(Style.ACTION) == "action"
        assert str(Style.DEFAULT) == "default"

    def test_all_styles_exist(self) -> None:
        expected = {
            "DEFAULT",
            "SUCCESS",
            "ERROR",
            "WARNING",
            "INFO",
            "ACTION",
            "DIM",
            "BOLD",
            "HEADER",
        }
        assert {s.name for s in Style} == expected


class TestMockConsole:
    """MockConsole records what the upgrade steps print."""

    def test_print_captures_message(self) -> None:
        console = MockConsole()
        console.print("hello")
        assert console.outputs == [OutputRecord("hello", Style.DEFAULT)]

    def test_prefixed_levels(self) -> None:
        console = MockConsole()
        console.success("built")
        console.error("failed")
        console.warning("careful")
        console.info("fyi")
        console.action("create the announcement")

        assert console.messages == [
            "OK built",
            "error: failed",
            "warning: careful",
            "info: fyi",
            "action required: create the announcement",
        ]
        assert console.has_success()
        assert console.has_error()
        assert console.has_warning()
        assert console.count(Style.ACTION) == 1

    def test_commands_strip_prompt(self) -> None:
        console = MockConsole()
        console.command(["git", "fetch", "upstream", "--tags"])
        console.info("$ not a command")

        assert console.commands == ["git fetch upstream --tags"]

    def test_header_and_newline(self) -> None:
        console = MockConsole()
        console.header("Build")
        console.newline()
        assert console.outputs[0].style == Style.HEADER
        assert console.text == "Build\n"

    def test_find_and_clear(self) -> None:
        console = MockConsole()
        console.info("12 commits behind upstream")
        console.info("nothing else")

        assert len(console.find("commits behind")) == 1
        console.clear()
        assert console.outputs == []

    def test_no_errors_by_default(self) -> None:
        console = MockConsole()
        console.print("plain")
        assert not console.has_error()
        assert not console.has_warning()


class TestProtocolConformance:
    def test_mock_console(self) -> None:
        console: ConsoleProtocol = MockConsole()
        console.action("x")

    def test_rich_console(self) -> None:
        console: ConsoleProtocol = RichConsole()
        assert console is not None
