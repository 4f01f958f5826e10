from __future__ import annotations

import logging
from typing import Any, Protocol

from ...core.logging_utils import log_event
from ...core.state import BotStateStore
from .errors import DiscordAPIError
from .messaging import reply_with
from .models import InboundMessage
from .permissions import member_can_manage_guild

SET_COMMAND_PREFIX = "$set "
SUBCOMMAND_PR_CHANNEL = "prchannel"

PR_CHANNEL_SET_MESSAGE = "Listening for `nixpkgs` PR URLs in this channel!"
UNKNOWN_COMMAND_MESSAGE = "No such command."
PERMISSION_DENIED_MESSAGE = "You don't have enough permissions to manage the bot."


class CommandRest(Protocol):
    async def create_channel_message(
        self, *, channel_id: str, payload: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def get_guild(self, *, guild_id: str) -> dict[str, Any]: ...

    async def get_guild_member(
        self, *, guild_id: str, user_id: str
    ) -> dict[str, Any]: ...


def parse_set_command(content: str) -> str | None:
    """Return the subcommand of a ``$set`` message, or ``None``."""

    if not content.startswith(SET_COMMAND_PREFIX):
        return None
    return content[len(SET_COMMAND_PREFIX) :]


class SetCommandHandler:
    def __init__(
        self,
        *,
        rest: CommandRest,
        store: BotStateStore,
        logger: logging.Logger,
    ) -> None:
        self._rest = rest
        self._store = store
        self._logger = logger

    async def handle(self, message: InboundMessage, subcommand: str) -> None:
        if message.guild_id is None:
            # Permissions only exist inside a guild; DMs are ignored.
            return
        try:
            allowed = await member_can_manage_guild(
                self._rest, guild_id=message.guild_id, user_id=message.author_id
            )
        except DiscordAPIError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.set.permission_lookup_failed",
                guild_id=message.guild_id,
                user_id=message.author_id,
                exc=exc,
            )
            return

        if not allowed:
            log_event(
                self._logger,
                logging.INFO,
                "discord.set.denied",
                guild_id=message.guild_id,
                user_id=message.author_id,
            )
            await self._reply(message, PERMISSION_DENIED_MESSAGE)
            return

        if subcommand == SUBCOMMAND_PR_CHANNEL:
            self._store.set_pr_channel(message.channel_id)
            log_event(
                self._logger,
                logging.INFO,
                "discord.set.pr_channel",
                channel_id=message.channel_id,
                user_id=message.author_id,
            )
            await self._reply(message, PR_CHANNEL_SET_MESSAGE)
            return

        log_event(
            self._logger,
            logging.INFO,
            "discord.set.unknown_subcommand",
            subcommand=subcommand,
            user_id=message.author_id,
        )
        await self._reply(message, UNKNOWN_COMMAND_MESSAGE)

    async def _reply(self, message: InboundMessage, content: str) -> None:
        await reply_with(self._rest, message, content, logger=self._logger)
