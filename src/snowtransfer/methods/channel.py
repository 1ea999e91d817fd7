"""Channel and message endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from snowtransfer.methods import endpoints
from snowtransfer.methods.base import MethodGroup

if TYPE_CHECKING:
    from collections.abc import Sequence

    from snowtransfer.types import Attachment, RequestOptions

MAX_BULK_DELETE = 100
MIN_BULK_DELETE = 2
MAX_MESSAGES_PER_PAGE = 100


class ChannelMethods(MethodGroup):
    """Methods for channels, messages and reactions."""

    async def get_channel(self, channel_id: str) -> Any:
        return await self._call("GET", endpoints.CHANNEL.format(channel_id=channel_id))

    async def edit_channel(
        self,
        channel_id: str,
        data: dict[str, Any],
        *,
        reason: str | None = None,
    ) -> Any:
        return await self._call(
            "PATCH",
            endpoints.CHANNEL.format(channel_id=channel_id),
            body=data,
            reason=reason,
        )

    async def delete_channel(self, channel_id: str, *, reason: str | None = None) -> Any:
        return await self._call(
            "DELETE",
            endpoints.CHANNEL.format(channel_id=channel_id),
            reason=reason,
        )

    async def get_channel_messages(
        self,
        channel_id: str,
        *,
        limit: int = 50,
        before: str | None = None,
        after: str | None = None,
        around: str | None = None,
        options: RequestOptions | None = None,
    ) -> Any:
        """
        Fetch up to `limit` messages (1-100).

        At most one of before/after/around may be given.
        """
        if not 1 <= limit <= MAX_MESSAGES_PER_PAGE:
            raise ValueError(f"limit must be between 1 and {MAX_MESSAGES_PER_PAGE}, got {limit}")
        anchors = [a for a in (before, after, around) if a is not None]
        if len(anchors) > 1:
            raise ValueError("Only one of before, after, around may be set")
        return await self._call(
            "GET",
            endpoints.CHANNEL_MESSAGES.format(channel_id=channel_id),
            query={"limit": limit, "before": before, "after": after, "around": around},
            options=options,
        )

    async def get_channel_message(self, channel_id: str, message_id: str) -> Any:
        return await self._call(
            "GET",
            endpoints.CHANNEL_MESSAGE.format(channel_id=channel_id, message_id=message_id),
        )

    async def create_message(
        self,
        channel_id: str,
        data: str | dict[str, Any],
        *,
        files: Sequence[Attachment] = (),
        options: RequestOptions | None = None,
    ) -> Any:
        """
        Send a message to a channel.

        Args:
            channel_id: Target channel.
            data: Message content, or a full message payload.
            files: Attachments to upload with the message.
            options: Timeout / cancellation options.
        """
        body = {"content": data} if isinstance(data, str) else data
        return await self._call(
            "POST",
            endpoints.CHANNEL_MESSAGES.format(channel_id=channel_id),
            body=body,
            files=files,
            options=options,
        )

    async def edit_message(
        self,
        channel_id: str,
        message_id: str,
        data: str | dict[str, Any],
        *,
        files: Sequence[Attachment] = (),
    ) -> Any:
        body = {"content": data} if isinstance(data, str) else data
        return await self._call(
            "PATCH",
            endpoints.CHANNEL_MESSAGE.format(channel_id=channel_id, message_id=message_id),
            body=body,
            files=files,
        )

    async def delete_message(
        self,
        channel_id: str,
        message_id: str,
        *,
        reason: str | None = None,
    ) -> Any:
        return await self._call(
            "DELETE",
            endpoints.CHANNEL_MESSAGE.format(channel_id=channel_id, message_id=message_id),
            reason=reason,
        )

    async def bulk_delete_messages(
        self,
        channel_id: str,
        message_ids: Sequence[str],
        *,
        reason: str | None = None,
    ) -> Any:
        if not MIN_BULK_DELETE <= len(message_ids) <= MAX_BULK_DELETE:
            raise ValueError(
                f"Bulk delete takes {MIN_BULK_DELETE}-{MAX_BULK_DELETE} messages, got {len(message_ids)}"
            )
        return await self._call(
            "POST",
            endpoints.CHANNEL_BULK_DELETE.format(channel_id=channel_id),
            body={"messages": list(message_ids)},
            reason=reason,
        )

    async def create_reaction(self, channel_id: str, message_id: str, emoji: str) -> Any:
        return await self._call(
            "PUT",
            endpoints.CHANNEL_MESSAGE_REACTION_USER.format(
                channel_id=channel_id,
                message_id=message_id,
                emoji=endpoints.encode_emoji(emoji),
                user_id="@me",
            ),
        )

    async def delete_own_reaction(self, channel_id: str, message_id: str, emoji: str) -> Any:
        return await self._call(
            "DELETE",
            endpoints.CHANNEL_MESSAGE_REACTION_USER.format(
                channel_id=channel_id,
                message_id=message_id,
                emoji=endpoints.encode_emoji(emoji),
                user_id="@me",
            ),
        )

    async def trigger_typing(self, channel_id: str) -> Any:
        return await self._call("POST", endpoints.CHANNEL_TYPING.format(channel_id=channel_id))
