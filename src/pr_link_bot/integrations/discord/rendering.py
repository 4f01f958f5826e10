from __future__ import annotations

from .constants import DISCORD_MAX_MESSAGE_LENGTH

_ELLIPSIS = "..."


def truncate_for_discord(text: str, max_len: int = DISCORD_MAX_MESSAGE_LENGTH) -> str:
    if not text:
        return ""
    if len(text) <= max_len:
        return text
    if max_len <= len(_ELLIPSIS):
        return text[:max_len]
    return text[: max_len - len(_ELLIPSIS)] + _ELLIPSIS


def format_user_mention(user_id: str) -> str:
    return f"<@{user_id}>"


def format_pr_summary(
    *,
    author_id: str,
    title: str,
    url: str,
    max_len: int = DISCORD_MAX_MESSAGE_LENGTH,
) -> str:
    """Render ``<@author>: title | <url>``.

    The URL is wrapped in angle brackets so Discord does not embed a preview.
    Only the title is shortened when the message would exceed ``max_len``; the
    mention and link stay intact.
    """

    prefix = f"{format_user_mention(author_id)}: "
    suffix = f" | <{url}>"
    budget = max_len - len(prefix) - len(suffix)
    if budget <= 0:
        return truncate_for_discord(prefix + title + suffix, max_len)
    return prefix + truncate_for_discord(title, budget) + suffix


def format_lookup_failure(error: object) -> str:
    return truncate_for_discord(f"No such PR? ({error})")
