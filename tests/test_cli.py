from __future__ import annotations

import logging
from pathlib import Path

import pytest
from typer.testing import CliRunner

from pr_link_bot import __version__
from pr_link_bot import cli as cli_module
from pr_link_bot.cli import app
from pr_link_bot.core.config import BotConfig
from pr_link_bot.core.state import StateFileError

runner = CliRunner()


def test_version_flag_prints_version() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"pr-link-bot {__version__}" in result.output


def test_start_requires_discord_token(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("DISCORD_TOKEN", raising=False)

    result = runner.invoke(app, ["start", "--root", str(tmp_path)])

    assert result.exit_code == 1
    assert "DISCORD_TOKEN" in result.output


def test_start_rejects_missing_config_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("DISCORD_TOKEN", "token")

    result = runner.invoke(
        app,
        ["start", "--root", str(tmp_path), "--config", str(tmp_path / "nope.yml")],
    )

    assert result.exit_code == 1
    assert "Config file not found" in result.output


def test_start_runs_bot_with_loaded_config(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("DISCORD_TOKEN", "token")
    (tmp_path / "pr-link-bot.yml").write_text(
        "state_file: state/bot.json\n", encoding="utf-8"
    )
    seen: list[BotConfig] = []
    loggers: list[logging.Logger] = []

    async def _fake_run(config: BotConfig, *, logger: logging.Logger) -> None:
        seen.append(config)
        loggers.append(logger)

    monkeypatch.setattr(cli_module, "run_pr_link_bot", _fake_run)

    result = runner.invoke(app, ["start", "--root", str(tmp_path)])

    assert result.exit_code == 0, result.output
    assert len(seen) == 1
    assert seen[0].discord.bot_token == "token"
    assert seen[0].state_file == (tmp_path / "state" / "bot.json").resolve()
    assert (tmp_path / "logs").is_dir()
    assert [logger.name for logger in loggers] == ["pr_link_bot"]


def test_start_exits_on_state_file_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("DISCORD_TOKEN", "token")

    async def _fake_run(config: BotConfig, *, logger: logging.Logger) -> None:
        raise StateFileError("Corrupt state file data.json")

    monkeypatch.setattr(cli_module, "run_pr_link_bot", _fake_run)

    result = runner.invoke(app, ["start", "--root", str(tmp_path)])

    assert result.exit_code == 1
    assert "Corrupt state file" in result.output
