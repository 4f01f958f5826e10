from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


def _as_id(value: object) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    token = str(value).strip()
    return token or None


@dataclass(frozen=True)
class InboundMessage:
    message_id: str
    channel_id: str
    author_id: str
    content: str
    guild_id: Optional[str] = None
    author_is_bot: bool = False


def parse_message_create(payload: dict[str, Any]) -> Optional[InboundMessage]:
    """Build an :class:`InboundMessage` from a ``MESSAGE_CREATE`` payload."""

    author = payload.get("author")
    author = author if isinstance(author, dict) else {}
    message_id = _as_id(payload.get("id"))
    channel_id = _as_id(payload.get("channel_id"))
    author_id = _as_id(author.get("id"))
    if not message_id or not channel_id or not author_id:
        return None
    content = payload.get("content")
    return InboundMessage(
        message_id=message_id,
        channel_id=channel_id,
        author_id=author_id,
        content=content if isinstance(content, str) else "",
        guild_id=_as_id(payload.get("guild_id")),
        author_is_bot=bool(author.get("bot", False)),
    )
