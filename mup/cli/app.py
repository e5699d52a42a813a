from __future__ import annotations

import os
from pathlib import Path

import typer

from mup import __version__
from mup.cli.commands.inspect_cmd import latest, remotes
from mup.cli.commands.upgrade import local, production
from mup.core.config import CONFIG_ENV_VAR
from mup.core.errors import ErrorCode

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Interactive Mastodon upgrade pilot.",
)


# Commands
app.command()(local)
app.command()(production)
app.command()(remotes)
app.command()(latest)


@app.callback(invoke_without_command=True)
def _main(  # pyright: ignore[reportUnusedFunction]
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    config: Path | None = typer.Option(
        None,
        "--config",
        help=f"Config file (default: ${CONFIG_ENV_VAR}, ./mup.toml, ~/.config/mup/config.toml)",
    ),
) -> None:
    if version:
        typer.echo(__version__)
        raise typer.Exit(code=0)

    if config is not None:
        path = config.expanduser()
        if not path.is_file():
            typer.echo(f"error: config file not found: {path}", err=True)
            raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

        os.environ[CONFIG_ENV_VAR] = str(path)

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(code=0)


def main() -> None:
    app()
