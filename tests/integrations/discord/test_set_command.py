from __future__ import annotations

import logging
from pathlib import Path

import pytest

from pr_link_bot.core.state import BotData, BotStateStore
from pr_link_bot.integrations.discord.commands import (
    PERMISSION_DENIED_MESSAGE,
    PR_CHANNEL_SET_MESSAGE,
    UNKNOWN_COMMAND_MESSAGE,
    SetCommandHandler,
    parse_set_command,
)
from tests.fixtures.discord_fakes import (
    MANAGER_ID,
    MEMBER_ID,
    FakeRest,
    make_message,
)


def _handler(rest: FakeRest, tmp_path: Path) -> tuple[SetCommandHandler, BotStateStore]:
    store = BotStateStore(tmp_path / "data.json")
    handler = SetCommandHandler(
        rest=rest, store=store, logger=logging.getLogger("test.set_command")
    )
    return handler, store


@pytest.mark.parametrize(
    ("content", "expected"),
    [
        ("$set prchannel", "prchannel"),
        ("$set foo bar", "foo bar"),
        ("$set ", ""),
        ("$set", None),
        ("$setprchannel", None),
        (" $set prchannel", None),
        ("hello", None),
    ],
)
def test_parse_set_command(content: str, expected: str | None) -> None:
    assert parse_set_command(content) == expected


@pytest.mark.anyio
async def test_manager_sets_pr_channel(tmp_path: Path) -> None:
    rest = FakeRest()
    handler, store = _handler(rest, tmp_path)
    message = make_message("$set prchannel", channel_id="chan-7", author_id=MANAGER_ID)

    await handler.handle(message, "prchannel")

    assert store.get() == BotData(pr_channel="chan-7")
    assert len(rest.sent) == 1
    assert rest.sent[0]["content"] == PR_CHANNEL_SET_MESSAGE
    assert rest.sent[0]["channel_id"] == "chan-7"
    assert rest.sent[0]["message_reference"]["message_id"] == "msg-1"
    assert rest.deleted == []


@pytest.mark.anyio
async def test_member_without_manage_guild_is_denied(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    rest = FakeRest()
    handler, store = _handler(rest, tmp_path)
    store.set_pr_channel("chan-old")

    with caplog.at_level(logging.INFO):
        await handler.handle(
            make_message("$set prchannel", channel_id="chan-7", author_id=MEMBER_ID),
            "prchannel",
        )

    assert store.get() == BotData(pr_channel="chan-old")
    assert [payload["content"] for payload in rest.sent] == [PERMISSION_DENIED_MESSAGE]
    assert rest.sent[0]["message_reference"]["message_id"] == "msg-1"
    assert "discord.set.denied" in caplog.text


@pytest.mark.anyio
async def test_unknown_subcommand_does_not_mutate_state(tmp_path: Path) -> None:
    rest = FakeRest()
    handler, store = _handler(rest, tmp_path)

    await handler.handle(make_message("$set foo", author_id=MANAGER_ID), "foo")

    assert store.get() == BotData()
    assert [payload["content"] for payload in rest.sent] == [UNKNOWN_COMMAND_MESSAGE]


@pytest.mark.anyio
async def test_subcommand_must_match_exactly(tmp_path: Path) -> None:
    rest = FakeRest()
    handler, store = _handler(rest, tmp_path)

    await handler.handle(
        make_message("$set prchannel ", author_id=MANAGER_ID), "prchannel "
    )

    assert store.get() == BotData()
    assert [payload["content"] for payload in rest.sent] == [UNKNOWN_COMMAND_MESSAGE]


@pytest.mark.anyio
async def test_direct_messages_are_ignored(tmp_path: Path) -> None:
    rest = FakeRest()
    handler, store = _handler(rest, tmp_path)

    await handler.handle(
        make_message("$set prchannel", author_id=MANAGER_ID, guild_id=None),
        "prchannel",
    )

    assert store.get() == BotData()
    assert rest.calls == []


@pytest.mark.anyio
async def test_permission_lookup_failure_is_logged_without_reply(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    rest = FakeRest(fail_guild_lookup=True)
    handler, store = _handler(rest, tmp_path)

    with caplog.at_level(logging.ERROR):
        await handler.handle(
            make_message("$set prchannel", author_id=MANAGER_ID), "prchannel"
        )

    assert store.get() == BotData()
    assert rest.calls == []
    assert "discord.set.permission_lookup_failed" in caplog.text


@pytest.mark.anyio
async def test_reply_failure_still_applies_setting(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    rest = FakeRest(fail_send=True)
    handler, store = _handler(rest, tmp_path)

    with caplog.at_level(logging.ERROR):
        await handler.handle(
            make_message("$set prchannel", channel_id="chan-9", author_id=MANAGER_ID),
            "prchannel",
        )

    assert store.get() == BotData(pr_channel="chan-9")
    assert "discord.reply.failed" in caplog.text
