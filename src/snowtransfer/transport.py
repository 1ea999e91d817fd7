"""
HTTP transport for the request dispatcher.

The dispatcher only needs `send(method, url, headers, body)` returning status,
headers and raw body; AiohttpTransport is the default implementation. Request
bodies are JSON (orjson) or, with attachments, multipart with a
`payload_json` part.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import aiohttp
import orjson

from snowtransfer.errors import NetworkError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from snowtransfer.types import Attachment, RouteDescriptor

logger = logging.getLogger(__name__)

RequestBody = bytes | aiohttp.FormData | None


@dataclass(frozen=True)
class TransportResponse:
    """Raw response: status, lower-cased headers, body bytes."""

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""


class Transport(Protocol):
    """Anything that can send one HTTP request."""

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: RequestBody,
    ) -> TransportResponse:
        """
        Send a request.

        Raises:
            NetworkError: On transport-level failure.
        """
        ...

    async def close(self) -> None: ...


@dataclass(frozen=True)
class EncodedPayload:
    """
    Request payload encoded once at submission.

    JSON is serialized up front so unserializable bodies fail at submit time;
    multipart form data is rebuilt per send because aiohttp consumes it.
    """

    json_bytes: bytes | None = None
    attachments: tuple[Attachment, ...] = ()

    @property
    def content_type(self) -> str | None:
        if self.attachments:
            return None  # multipart boundary is set by aiohttp
        if self.json_bytes is not None:
            return "application/json"
        return None

    def build_body(self) -> RequestBody:
        if not self.attachments:
            return self.json_bytes

        form = aiohttp.FormData()
        if self.json_bytes is not None:
            form.add_field(
                "payload_json",
                self.json_bytes.decode("utf-8"),
                content_type="application/json",
            )
        for index, attachment in enumerate(self.attachments):
            form.add_field(
                f"files[{index}]",
                attachment.data,
                filename=attachment.filename,
                content_type=attachment.content_type,
            )
        return form


def encode_request(descriptor: RouteDescriptor) -> EncodedPayload:
    """
    Encode a descriptor's body and attachments.

    With attachments, the attachment metadata (id, filename, description) is
    merged into the JSON payload as the API expects.

    Raises:
        TypeError: If the body is not JSON-serializable.
    """
    body: Any = descriptor.body
    if descriptor.attachments:
        payload: dict[str, Any] = dict(body) if isinstance(body, dict) else {}
        if "attachments" not in payload:
            payload["attachments"] = [
                _attachment_meta(index, attachment)
                for index, attachment in enumerate(descriptor.attachments)
            ]
        body = payload

    if body is None:
        return EncodedPayload(attachments=descriptor.attachments)
    try:
        json_bytes = orjson.dumps(body)
    except orjson.JSONEncodeError as e:
        raise TypeError(f"Request body is not JSON-serializable: {e}") from e
    return EncodedPayload(json_bytes=json_bytes, attachments=descriptor.attachments)


def _attachment_meta(index: int, attachment: Attachment) -> dict[str, Any]:
    meta: dict[str, Any] = {"id": index, "filename": attachment.filename}
    if attachment.description is not None:
        meta["description"] = attachment.description
    return meta


class AiohttpTransport:
    """
    Transport backed by a lazily created aiohttp.ClientSession.

    The session timeout is the only per-request deadline once a request is
    in flight.
    """

    def __init__(
        self,
        request_timeout_ms: int = 15000,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._request_timeout_ms = request_timeout_ms
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._request_timeout_ms / 1000)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: RequestBody,
    ) -> TransportResponse:
        session = await self._get_session()
        try:
            async with session.request(method, url, headers=dict(headers), data=body) as response:
                payload = await response.read()
                return TransportResponse(
                    status=response.status,
                    headers={k.lower(): v for k, v in response.headers.items()},
                    body=payload,
                )
        except aiohttp.ClientError as e:
            logger.warning(
                "Transport error",
                extra={"method": method, "url": url, "error": str(e)},
            )
            raise NetworkError(f"{type(e).__name__}: {e}", method=method) from e
        except asyncio.TimeoutError as e:
            logger.warning(
                "Transport timeout",
                extra={"method": method, "url": url, "timeout_ms": self._request_timeout_ms},
            )
            raise NetworkError(
                f"Request timed out after {self._request_timeout_ms}ms", method=method
            ) from e

    async def close(self) -> None:
        """Close the HTTP session if this transport created it."""
        if self._session and not self._session.closed and self._owns_session:
            await self._session.close()
        self._session = None
