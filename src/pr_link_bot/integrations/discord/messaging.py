from __future__ import annotations

import logging
from typing import Any, Protocol

from ...core.logging_utils import log_event
from .errors import DiscordAPIError
from .models import InboundMessage
from .rendering import truncate_for_discord


class MessageSender(Protocol):
    async def create_channel_message(
        self, *, channel_id: str, payload: dict[str, Any]
    ) -> dict[str, Any]: ...


def build_reply_payload(message: InboundMessage, content: str) -> dict[str, Any]:
    reference: dict[str, Any] = {
        "message_id": message.message_id,
        "channel_id": message.channel_id,
        "fail_if_not_exists": False,
    }
    if message.guild_id:
        reference["guild_id"] = message.guild_id
    return {
        "content": truncate_for_discord(content),
        "message_reference": reference,
        # Mention only the user being replied to.
        "allowed_mentions": {"parse": [], "replied_user": True},
    }


async def reply_with(
    rest: MessageSender,
    message: InboundMessage,
    content: str,
    *,
    logger: logging.Logger,
) -> bool:
    """Reply to ``message``; failures are logged and reported as ``False``."""

    try:
        await rest.create_channel_message(
            channel_id=message.channel_id,
            payload=build_reply_payload(message, content),
        )
    except DiscordAPIError as exc:
        log_event(
            logger,
            logging.ERROR,
            "discord.reply.failed",
            channel_id=message.channel_id,
            message_id=message.message_id,
            exc=exc,
        )
        return False
    return True
