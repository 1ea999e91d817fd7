"""Webhook endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from snowtransfer.methods import endpoints
from snowtransfer.methods.base import MethodGroup

if TYPE_CHECKING:
    from collections.abc import Sequence

    from snowtransfer.types import Attachment, RequestOptions


class WebhookMethods(MethodGroup):
    """
    Methods for webhooks.

    Routes carrying the webhook token in the path are sent without the bot
    Authorization header.
    """

    async def create_webhook(
        self,
        channel_id: str,
        name: str,
        *,
        avatar: str | None = None,
        reason: str | None = None,
    ) -> Any:
        body: dict[str, Any] = {"name": name}
        if avatar is not None:
            body["avatar"] = avatar
        return await self._call(
            "POST",
            endpoints.CHANNEL_WEBHOOKS.format(channel_id=channel_id),
            body=body,
            reason=reason,
        )

    async def get_webhook(self, webhook_id: str, token: str | None = None) -> Any:
        if token is not None:
            return await self._call(
                "GET",
                endpoints.WEBHOOK_TOKEN.format(webhook_id=webhook_id, token=token),
                authenticated=False,
            )
        return await self._call("GET", endpoints.WEBHOOK.format(webhook_id=webhook_id))

    async def execute_webhook(
        self,
        webhook_id: str,
        token: str,
        data: str | dict[str, Any],
        *,
        wait: bool = False,
        thread_id: str | None = None,
        files: Sequence[Attachment] = (),
        options: RequestOptions | None = None,
    ) -> Any:
        """
        Execute a webhook.

        With wait=True the API returns the created message; otherwise the
        response is empty (None).
        """
        body = {"content": data} if isinstance(data, str) else data
        return await self._call(
            "POST",
            endpoints.WEBHOOK_TOKEN.format(webhook_id=webhook_id, token=token),
            body=body,
            files=files,
            query={"wait": wait, "thread_id": thread_id},
            authenticated=False,
            options=options,
        )

    async def delete_webhook(
        self,
        webhook_id: str,
        token: str | None = None,
        *,
        reason: str | None = None,
    ) -> Any:
        if token is not None:
            return await self._call(
                "DELETE",
                endpoints.WEBHOOK_TOKEN.format(webhook_id=webhook_id, token=token),
                reason=reason,
                authenticated=False,
            )
        return await self._call(
            "DELETE",
            endpoints.WEBHOOK.format(webhook_id=webhook_id),
            reason=reason,
        )
