"""Tests for request encoding and the aiohttp transport."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import orjson
import pytest

from snowtransfer.errors import NetworkError
from snowtransfer.transport import AiohttpTransport, EncodedPayload, TransportResponse, encode_request
from snowtransfer.types import Attachment, RouteDescriptor


class TestEncodeRequest:
    """encode_request() and EncodedPayload."""

    def test_no_body(self) -> None:
        payload = encode_request(RouteDescriptor("GET", "/users/@me"))
        assert payload == EncodedPayload()
        assert payload.content_type is None
        assert payload.build_body() is None

    def test_json_body(self) -> None:
        payload = encode_request(RouteDescriptor("POST", "/x", body={"content": "hi"}))
        assert payload.content_type == "application/json"
        assert orjson.loads(payload.build_body()) == {"content": "hi"}

    def test_attachments_switch_to_multipart(self) -> None:
        descriptor = RouteDescriptor(
            "POST",
            "/channels/1/messages",
            body={"content": "see file"},
            attachments=(Attachment("a.txt", b"hello", "text/plain", description="greeting"),),
        )
        payload = encode_request(descriptor)

        assert payload.content_type is None
        assert orjson.loads(payload.json_bytes) == {
            "content": "see file",
            "attachments": [{"id": 0, "filename": "a.txt", "description": "greeting"}],
        }
        assert isinstance(payload.build_body(), aiohttp.FormData)

    def test_explicit_attachment_metadata_kept(self) -> None:
        descriptor = RouteDescriptor(
            "POST",
            "/x",
            body={"attachments": [{"id": 0, "filename": "renamed.txt"}]},
            attachments=(Attachment("a.txt", b"x"),),
        )
        payload = encode_request(descriptor)
        assert orjson.loads(payload.json_bytes)["attachments"] == [{"id": 0, "filename": "renamed.txt"}]

    def test_form_rebuilt_per_send(self) -> None:
        payload = encode_request(RouteDescriptor("POST", "/x", attachments=(Attachment("a", b"1"),)))
        assert payload.build_body() is not payload.build_body()

    def test_unserializable_body(self) -> None:
        with pytest.raises(TypeError, match="JSON-serializable"):
            encode_request(RouteDescriptor("POST", "/x", body={"when": object()}))


class TestAiohttpTransport:
    """AiohttpTransport with a mocked aiohttp session."""

    @pytest.fixture
    def mock_response(self) -> MagicMock:
        response = MagicMock()
        response.status = 200
        response.headers = {"X-RateLimit-Remaining": "4", "Content-Type": "application/json"}
        response.read = AsyncMock(return_value=b'{"id":"1"}')
        response.__aenter__ = AsyncMock(return_value=response)
        response.__aexit__ = AsyncMock(return_value=None)
        return response

    @pytest.mark.asyncio
    async def test_send_returns_lower_cased_headers(self, mock_response: MagicMock) -> None:
        transport = AiohttpTransport()

        with patch.object(aiohttp.ClientSession, "request", return_value=mock_response) as request:
            response = await transport.send("GET", "https://discord.test/api/v10/users/@me", {"A": "b"}, None)

        assert response == TransportResponse(
            status=200,
            headers={"x-ratelimit-remaining": "4", "content-type": "application/json"},
            body=b'{"id":"1"}',
        )
        request.assert_called_once_with(
            "GET", "https://discord.test/api/v10/users/@me", headers={"A": "b"}, data=None
        )
        await transport.close()

    @pytest.mark.asyncio
    async def test_client_error_becomes_network_error(self) -> None:
        transport = AiohttpTransport()

        with (
            patch.object(aiohttp.ClientSession, "request", side_effect=aiohttp.ClientConnectionError("reset")),
            pytest.raises(NetworkError, match="reset"),
        ):
            await transport.send("GET", "https://discord.test/api/v10/x", {}, None)

        await transport.close()

    @pytest.mark.asyncio
    async def test_timeout_becomes_network_error(self) -> None:
        transport = AiohttpTransport(request_timeout_ms=1234)

        with (
            patch.object(aiohttp.ClientSession, "request", side_effect=asyncio.TimeoutError()),
            pytest.raises(NetworkError, match="1234ms"),
        ):
            await transport.send("GET", "https://discord.test/api/v10/x", {}, None)

        await transport.close()

    @pytest.mark.asyncio
    async def test_session_reused_and_closed(self) -> None:
        transport = AiohttpTransport()
        first = await transport._get_session()
        second = await transport._get_session()
        assert first is second

        await transport.close()
        assert first.closed

    @pytest.mark.asyncio
    async def test_external_session_not_closed(self) -> None:
        session = aiohttp.ClientSession()
        transport = AiohttpTransport(session=session)

        await transport.close()

        assert not session.closed
        await session.close()
