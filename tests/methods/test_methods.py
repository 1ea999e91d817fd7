"""Tests for the resource-method wrappers."""

from __future__ import annotations

from typing import Any

import pytest

from snowtransfer.methods import ChannelMethods, GuildMethods, UserMethods, WebhookMethods
from snowtransfer.methods.endpoints import encode_emoji
from snowtransfer.types import Attachment, RequestOptions, RouteDescriptor

WEBHOOK_TOKEN = "t" * 68


class RecordingRequester:
    """Requester that records descriptors and resolves immediately."""

    def __init__(self, result: Any = None) -> None:
        self.result = result
        self.submitted: list[tuple[RouteDescriptor, RequestOptions | None]] = []

    async def submit(self, descriptor: RouteDescriptor, options: RequestOptions | None = None) -> Any:
        self.submitted.append((descriptor, options))
        return self.result

    @property
    def last(self) -> RouteDescriptor:
        return self.submitted[-1][0]


@pytest.fixture
def requester() -> RecordingRequester:
    return RecordingRequester({"ok": True})


class TestChannelMethods:
    """ChannelMethods."""

    @pytest.mark.asyncio
    async def test_get_channel(self, requester: RecordingRequester) -> None:
        result = await ChannelMethods(requester).get_channel("1")
        assert result == {"ok": True}
        assert (requester.last.method, requester.last.path) == ("GET", "/channels/1")

    @pytest.mark.asyncio
    async def test_edit_and_delete_channel(self, requester: RecordingRequester) -> None:
        channels = ChannelMethods(requester)
        await channels.edit_channel("1", {"name": "general"}, reason="rename")
        assert requester.last.method == "PATCH"
        assert requester.last.body == {"name": "general"}
        assert requester.last.reason == "rename"

        await channels.delete_channel("1")
        assert (requester.last.method, requester.last.path) == ("DELETE", "/channels/1")

    @pytest.mark.asyncio
    async def test_create_message_from_string(self, requester: RecordingRequester) -> None:
        options = RequestOptions(timeout_ms=1000)
        await ChannelMethods(requester).create_message("1", "hello", options=options)

        descriptor, sent_options = requester.submitted[-1]
        assert descriptor.method == "POST"
        assert descriptor.path == "/channels/1/messages"
        assert descriptor.body == {"content": "hello"}
        assert descriptor.authenticated
        assert sent_options is options

    @pytest.mark.asyncio
    async def test_create_message_with_files(self, requester: RecordingRequester) -> None:
        files = [Attachment("a.txt", b"x")]
        await ChannelMethods(requester).create_message("1", {"content": "f", "tts": False}, files=files)
        assert requester.last.body == {"content": "f", "tts": False}
        assert requester.last.attachments == (files[0],)

    @pytest.mark.asyncio
    async def test_get_channel_messages_query(self, requester: RecordingRequester) -> None:
        await ChannelMethods(requester).get_channel_messages("1", limit=10, before="99")
        assert requester.last.path == "/channels/1/messages"
        assert requester.last.query == {"limit": 10, "before": "99", "after": None, "around": None}

    @pytest.mark.asyncio
    async def test_get_channel_messages_validation(self, requester: RecordingRequester) -> None:
        channels = ChannelMethods(requester)
        with pytest.raises(ValueError, match="limit"):
            await channels.get_channel_messages("1", limit=101)
        with pytest.raises(ValueError, match="Only one"):
            await channels.get_channel_messages("1", before="1", after="2")
        assert requester.submitted == []

    @pytest.mark.asyncio
    async def test_message_routes(self, requester: RecordingRequester) -> None:
        channels = ChannelMethods(requester)
        await channels.get_channel_message("1", "2")
        assert (requester.last.method, requester.last.path) == ("GET", "/channels/1/messages/2")
        await channels.edit_message("1", "2", "edited")
        assert (requester.last.method, requester.last.body) == ("PATCH", {"content": "edited"})
        await channels.delete_message("1", "2", reason="spam")
        assert (requester.last.method, requester.last.reason) == ("DELETE", "spam")

    @pytest.mark.asyncio
    async def test_bulk_delete(self, requester: RecordingRequester) -> None:
        channels = ChannelMethods(requester)
        await channels.bulk_delete_messages("1", ["2", "3"])
        assert requester.last.path == "/channels/1/messages/bulk-delete"
        assert requester.last.body == {"messages": ["2", "3"]}

        with pytest.raises(ValueError, match="Bulk delete"):
            await channels.bulk_delete_messages("1", ["2"])

    @pytest.mark.asyncio
    async def test_reactions_encode_emoji(self, requester: RecordingRequester) -> None:
        channels = ChannelMethods(requester)
        await channels.create_reaction("1", "2", "👍")
        assert requester.last.method == "PUT"
        assert requester.last.path == "/channels/1/messages/2/reactions/%F0%9F%91%8D/@me"

        await channels.delete_own_reaction("1", "2", "blob:123")
        assert requester.last.method == "DELETE"
        assert requester.last.path == "/channels/1/messages/2/reactions/blob%3A123/@me"

    @pytest.mark.asyncio
    async def test_trigger_typing(self, requester: RecordingRequester) -> None:
        await ChannelMethods(requester).trigger_typing("1")
        assert (requester.last.method, requester.last.path) == ("POST", "/channels/1/typing")


class TestGuildMethods:
    """GuildMethods."""

    @pytest.mark.asyncio
    async def test_get_guild(self, requester: RecordingRequester) -> None:
        await GuildMethods(requester).get_guild("5", with_counts=True)
        assert requester.last.path == "/guilds/5"
        assert requester.last.query == {"with_counts": True}

    @pytest.mark.asyncio
    async def test_channels_and_members(self, requester: RecordingRequester) -> None:
        guilds = GuildMethods(requester)
        await guilds.get_guild_channels("5")
        assert requester.last.path == "/guilds/5/channels"
        await guilds.get_guild_member("5", "7")
        assert requester.last.path == "/guilds/5/members/7"
        await guilds.list_guild_members("5", limit=100, after="7")
        assert requester.last.query == {"limit": 100, "after": "7"}

    @pytest.mark.asyncio
    async def test_list_members_limit(self, requester: RecordingRequester) -> None:
        with pytest.raises(ValueError, match="limit"):
            await GuildMethods(requester).list_guild_members("5", limit=0)

    @pytest.mark.asyncio
    async def test_member_roles(self, requester: RecordingRequester) -> None:
        guilds = GuildMethods(requester)
        await guilds.add_guild_member_role("5", "7", "8", reason="promote")
        assert (requester.last.method, requester.last.path) == ("PUT", "/guilds/5/members/7/roles/8")
        assert requester.last.reason == "promote"
        await guilds.remove_guild_member_role("5", "7", "8")
        assert requester.last.method == "DELETE"


class TestWebhookMethods:
    """WebhookMethods."""

    @pytest.mark.asyncio
    async def test_create_webhook(self, requester: RecordingRequester) -> None:
        await WebhookMethods(requester).create_webhook("1", "hook", avatar="data:image/png;base64,x")
        assert requester.last.path == "/channels/1/webhooks"
        assert requester.last.body == {"name": "hook", "avatar": "data:image/png;base64,x"}

    @pytest.mark.asyncio
    async def test_get_webhook_with_and_without_token(self, requester: RecordingRequester) -> None:
        webhooks = WebhookMethods(requester)
        await webhooks.get_webhook("3")
        assert requester.last.path == "/webhooks/3"
        assert requester.last.authenticated

        await webhooks.get_webhook("3", WEBHOOK_TOKEN)
        assert requester.last.path == f"/webhooks/3/{WEBHOOK_TOKEN}"
        assert not requester.last.authenticated

    @pytest.mark.asyncio
    async def test_execute_webhook(self, requester: RecordingRequester) -> None:
        await WebhookMethods(requester).execute_webhook("3", WEBHOOK_TOKEN, "hi", wait=True)
        descriptor = requester.last
        assert descriptor.method == "POST"
        assert descriptor.path == f"/webhooks/3/{WEBHOOK_TOKEN}"
        assert descriptor.body == {"content": "hi"}
        assert descriptor.query == {"wait": True, "thread_id": None}
        assert not descriptor.authenticated

    @pytest.mark.asyncio
    async def test_delete_webhook(self, requester: RecordingRequester) -> None:
        webhooks = WebhookMethods(requester)
        await webhooks.delete_webhook("3", reason="cleanup")
        assert requester.last.authenticated
        await webhooks.delete_webhook("3", WEBHOOK_TOKEN)
        assert not requester.last.authenticated


class TestUserMethods:
    """UserMethods."""

    @pytest.mark.asyncio
    async def test_user_routes(self, requester: RecordingRequester) -> None:
        users = UserMethods(requester)
        await users.get_self()
        assert requester.last.path == "/users/@me"
        await users.get_user("11")
        assert requester.last.path == "/users/11"
        await users.create_direct_message_channel("11")
        assert (requester.last.method, requester.last.path) == ("POST", "/users/@me/channels")
        assert requester.last.body == {"recipient_id": "11"}


class TestEndpoints:
    def test_encode_emoji(self) -> None:
        assert encode_emoji("name:123") == "name%3A123"
        assert encode_emoji("🔥") == "%F0%9F%94%A5"
