from __future__ import annotations

from typing import Any

import pytest

from pr_link_bot.integrations.discord.constants import (
    DISCORD_PERMISSION_ADMINISTRATOR,
    DISCORD_PERMISSION_MANAGE_GUILD,
)
from pr_link_bot.integrations.discord.permissions import (
    ALL_PERMISSIONS,
    compute_base_permissions,
    member_can_manage_guild,
)

SEND_MESSAGES = 1 << 11


def _guild(*, everyone: int = 0, roles: dict[str, int] | None = None) -> dict[str, Any]:
    role_list = [{"id": "guild-1", "permissions": str(everyone)}]
    for role_id, bits in (roles or {}).items():
        role_list.append({"id": role_id, "permissions": str(bits)})
    return {"id": "guild-1", "owner_id": "owner", "roles": role_list}


def test_everyone_role_applies_to_all_members() -> None:
    guild = _guild(everyone=SEND_MESSAGES)
    assert compute_base_permissions(guild, {"roles": []}, user_id="u") == SEND_MESSAGES


def test_member_roles_are_combined() -> None:
    guild = _guild(
        everyone=SEND_MESSAGES, roles={"mods": DISCORD_PERMISSION_MANAGE_GUILD}
    )
    permissions = compute_base_permissions(guild, {"roles": ["mods"]}, user_id="u")
    assert permissions == SEND_MESSAGES | DISCORD_PERMISSION_MANAGE_GUILD


def test_administrator_and_owner_get_everything() -> None:
    guild = _guild(roles={"admins": DISCORD_PERMISSION_ADMINISTRATOR})
    assert (
        compute_base_permissions(guild, {"roles": ["admins"]}, user_id="u")
        == ALL_PERMISSIONS
    )
    assert compute_base_permissions(guild, {"roles": []}, user_id="owner") == (
        ALL_PERMISSIONS
    )


def test_unknown_roles_and_bad_bits_are_ignored() -> None:
    guild = _guild(everyone=0)
    guild["roles"].append({"id": "weird", "permissions": "not-a-number"})
    permissions = compute_base_permissions(
        guild, {"roles": ["missing", "weird"]}, user_id="u"
    )
    assert permissions == 0


class _FakeGuildRest:
    def __init__(self, guild: dict[str, Any], member: dict[str, Any]) -> None:
        self._guild = guild
        self._member = member
        self.calls: list[tuple[str, str]] = []

    async def get_guild(self, *, guild_id: str) -> dict[str, Any]:
        self.calls.append(("guild", guild_id))
        return self._guild

    async def get_guild_member(self, *, guild_id: str, user_id: str) -> dict[str, Any]:
        self.calls.append(("member", user_id))
        return self._member


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("member_roles", "expected"),
    [(["mods"], True), ([], False)],
)
async def test_member_can_manage_guild(member_roles: list[str], expected: bool) -> None:
    rest = _FakeGuildRest(
        _guild(roles={"mods": DISCORD_PERMISSION_MANAGE_GUILD}),
        {"roles": member_roles},
    )

    allowed = await member_can_manage_guild(rest, guild_id="guild-1", user_id="u-1")

    assert allowed is expected
    assert rest.calls == [("guild", "guild-1"), ("member", "u-1")]
