"""Guild and member endpoints."""

from __future__ import annotations

from typing import Any

from snowtransfer.methods import endpoints
from snowtransfer.methods.base import MethodGroup

MAX_MEMBERS_PER_PAGE = 1000


class GuildMethods(MethodGroup):
    """Methods for guilds and guild members."""

    async def get_guild(self, guild_id: str, *, with_counts: bool = False) -> Any:
        return await self._call(
            "GET",
            endpoints.GUILD.format(guild_id=guild_id),
            query={"with_counts": with_counts},
        )

    async def get_guild_channels(self, guild_id: str) -> Any:
        return await self._call("GET", endpoints.GUILD_CHANNELS.format(guild_id=guild_id))

    async def get_guild_member(self, guild_id: str, member_id: str) -> Any:
        return await self._call(
            "GET",
            endpoints.GUILD_MEMBER.format(guild_id=guild_id, member_id=member_id),
        )

    async def list_guild_members(
        self,
        guild_id: str,
        *,
        limit: int = 1,
        after: str | None = None,
    ) -> Any:
        if not 1 <= limit <= MAX_MEMBERS_PER_PAGE:
            raise ValueError(f"limit must be between 1 and {MAX_MEMBERS_PER_PAGE}, got {limit}")
        return await self._call(
            "GET",
            endpoints.GUILD_MEMBERS.format(guild_id=guild_id),
            query={"limit": limit, "after": after},
        )

    async def add_guild_member_role(
        self,
        guild_id: str,
        member_id: str,
        role_id: str,
        *,
        reason: str | None = None,
    ) -> Any:
        return await self._call(
            "PUT",
            endpoints.GUILD_MEMBER_ROLE.format(guild_id=guild_id, member_id=member_id, role_id=role_id),
            reason=reason,
        )

    async def remove_guild_member_role(
        self,
        guild_id: str,
        member_id: str,
        role_id: str,
        *,
        reason: str | None = None,
    ) -> Any:
        return await self._call(
            "DELETE",
            endpoints.GUILD_MEMBER_ROLE.format(guild_id=guild_id, member_id=member_id, role_id=role_id),
            reason=reason,
        )
