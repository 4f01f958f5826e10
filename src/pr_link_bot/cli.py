from __future__ import annotations

import asyncio
from pathlib import Path
from typing import NoReturn, Optional

import typer

from . import __version__
from .core.config import ConfigError, load_bot_config
from .core.logging_utils import setup_rotating_logger
from .core.state import StateFileError
from .integrations.discord.service import run_pr_link_bot

app = typer.Typer(add_completion=False)


def raise_exit(message: str, *, cause: Optional[BaseException] = None) -> NoReturn:
    typer.echo(message, err=True)
    if cause is not None:
        raise typer.Exit(code=1) from cause
    raise typer.Exit(code=1)


def _version_callback(value: bool) -> None:
    if not value:
        return
    typer.echo(f"pr-link-bot {__version__}")
    raise typer.Exit(code=0)


@app.callback()
def _root(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    # `--version` is handled eagerly via `_version_callback`.
    return


@app.command("start")
def start(
    root: Optional[Path] = typer.Option(
        None, "--root", help="Working directory for the state file and logs"
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", help="Settings file (defaults to <root>/pr-link-bot.yml)"
    ),
) -> None:
    """Run the bot until interrupted; the monitored channel is saved on exit."""

    root_path = (root or Path.cwd()).resolve()
    try:
        config = load_bot_config(root_path, config_path)
    except ConfigError as exc:
        raise_exit(str(exc), cause=exc)

    logger = setup_rotating_logger("pr_link_bot", config.log)
    try:
        asyncio.run(run_pr_link_bot(config, logger=logger))
    except StateFileError as exc:
        logger.error("State file error: %s", exc)
        raise_exit(str(exc), cause=exc)
    except KeyboardInterrupt:
        typer.echo("Bot stopped.")


def main() -> None:
    """Entrypoint for CLI execution."""
    app()
