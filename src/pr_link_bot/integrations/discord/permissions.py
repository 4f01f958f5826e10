from __future__ import annotations

from typing import Any, Protocol

from .constants import DISCORD_PERMISSION_ADMINISTRATOR, DISCORD_PERMISSION_MANAGE_GUILD

ALL_PERMISSIONS = (1 << 64) - 1


class GuildLookup(Protocol):
    async def get_guild(self, *, guild_id: str) -> dict[str, Any]: ...

    async def get_guild_member(
        self, *, guild_id: str, user_id: str
    ) -> dict[str, Any]: ...


def _parse_bits(value: Any) -> int:
    # Discord serialises permission sets as decimal strings.
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return 0


def compute_base_permissions(
    guild: dict[str, Any], member: dict[str, Any], *, user_id: str
) -> int:
    """Guild-level permissions of ``member``; channel overwrites are ignored."""

    guild_id = str(guild.get("id", ""))
    if guild_id and str(guild.get("owner_id", "")) == user_id:
        return ALL_PERMISSIONS

    roles = guild.get("roles")
    role_bits: dict[str, int] = {}
    if isinstance(roles, list):
        for role in roles:
            if isinstance(role, dict) and role.get("id") is not None:
                role_bits[str(role["id"])] = _parse_bits(role.get("permissions"))

    # The @everyone role shares the guild's id.
    permissions = role_bits.get(guild_id, 0)
    member_roles = member.get("roles")
    if isinstance(member_roles, list):
        for role_id in member_roles:
            permissions |= role_bits.get(str(role_id), 0)

    if permissions & DISCORD_PERMISSION_ADMINISTRATOR:
        return ALL_PERMISSIONS
    return permissions


async def member_can_manage_guild(
    rest: GuildLookup, *, guild_id: str, user_id: str
) -> bool:
    guild = await rest.get_guild(guild_id=guild_id)
    member = await rest.get_guild_member(guild_id=guild_id, user_id=user_id)
    permissions = compute_base_permissions(guild, member, user_id=user_id)
    return bool(permissions & DISCORD_PERMISSION_MANAGE_GUILD)
