"""
SnowTransfer client facade.

Wires a token and ClientOptions into one RequestDispatcher shared by every
resource-method group.

Usage:
    async with SnowTransfer("my-bot-token") as client:
        await client.channel.create_message("123", "hello")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from snowtransfer.config import ClientOptions, auth_header_value, resolve_token
from snowtransfer.dispatcher import RequestDispatcher
from snowtransfer.methods import ChannelMethods, GuildMethods, UserMethods, WebhookMethods
from snowtransfer.transport import AiohttpTransport

if TYPE_CHECKING:
    from types import TracebackType

    from snowtransfer.transport import Transport
    from snowtransfer.types import RequestHandle, RequestOptions, RouteDescriptor

logger = logging.getLogger(__name__)


class SnowTransfer:
    """REST client for the chat-platform API."""

    def __init__(
        self,
        token: str | None = None,
        options: ClientOptions | None = None,
        transport: Transport | None = None,
    ) -> None:
        """
        Create a client.

        Args:
            token: Bot token; falls back to the DISCORD_TOKEN environment variable.
            options: Client options (defaults apply when omitted).
            transport: HTTP transport (default: AiohttpTransport).

        Raises:
            ValueError: If no token is available.
        """
        self._options = options or ClientOptions()
        self._token = resolve_token(token)
        self._transport = transport or AiohttpTransport(
            request_timeout_ms=self._options.request_timeout_ms,
        )
        self._dispatcher = RequestDispatcher(
            self._transport,
            base_url=self._options.base_url,
            config=self._options.to_dispatcher_config(),
            default_headers={"User-Agent": self._options.user_agent},
            auth_header=auth_header_value(self._token),
        )

        self.channel = ChannelMethods(self._dispatcher)
        self.guild = GuildMethods(self._dispatcher)
        self.webhook = WebhookMethods(self._dispatcher)
        self.user = UserMethods(self._dispatcher)

        logger.debug(
            "Client created",
            extra={"base_url": self._options.base_url, "api_version": self._options.api_version},
        )

    @property
    def options(self) -> ClientOptions:
        return self._options

    @property
    def dispatcher(self) -> RequestDispatcher:
        return self._dispatcher

    @property
    def closed(self) -> bool:
        return self._dispatcher.closed

    def submit(
        self,
        descriptor: RouteDescriptor,
        options: RequestOptions | None = None,
    ) -> RequestHandle:
        """Submit a raw route through the shared dispatcher."""
        return self._dispatcher.submit(descriptor, options)

    def get_status(self) -> dict[str, Any]:
        return self._dispatcher.get_status()

    async def close(self) -> None:
        """Close the dispatcher and the transport."""
        await self._dispatcher.close()

    async def __aenter__(self) -> SnowTransfer:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
