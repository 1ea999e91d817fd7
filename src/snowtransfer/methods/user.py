"""User endpoints."""

from __future__ import annotations

from typing import Any

from snowtransfer.methods import endpoints
from snowtransfer.methods.base import MethodGroup


class UserMethods(MethodGroup):
    async def get_self(self) -> Any:
        return await self._call("GET", endpoints.SELF)

    async def get_user(self, user_id: str) -> Any:
        return await self._call("GET", endpoints.USER.format(user_id=user_id))

    async def create_direct_message_channel(self, user_id: str) -> Any:
        return await self._call("POST", endpoints.USER_CHANNELS, body={"recipient_id": user_id})
