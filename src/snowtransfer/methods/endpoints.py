"""Path templates for the resource-method wrappers."""

from __future__ import annotations

from urllib.parse import quote

CHANNEL = "/channels/{channel_id}"
CHANNEL_MESSAGES = "/channels/{channel_id}/messages"
CHANNEL_MESSAGE = "/channels/{channel_id}/messages/{message_id}"
CHANNEL_BULK_DELETE = "/channels/{channel_id}/messages/bulk-delete"
CHANNEL_MESSAGE_REACTION_USER = "/channels/{channel_id}/messages/{message_id}/reactions/{emoji}/{user_id}"
CHANNEL_TYPING = "/channels/{channel_id}/typing"
CHANNEL_WEBHOOKS = "/channels/{channel_id}/webhooks"

GUILD = "/guilds/{guild_id}"
GUILD_CHANNELS = "/guilds/{guild_id}/channels"
GUILD_MEMBERS = "/guilds/{guild_id}/members"
GUILD_MEMBER = "/guilds/{guild_id}/members/{member_id}"
GUILD_MEMBER_ROLE = "/guilds/{guild_id}/members/{member_id}/roles/{role_id}"

WEBHOOK = "/webhooks/{webhook_id}"
WEBHOOK_TOKEN = "/webhooks/{webhook_id}/{token}"

USER = "/users/{user_id}"
USER_CHANNELS = "/users/@me/channels"
SELF = "/users/@me"


def encode_emoji(emoji: str) -> str:
    """URL-encode an emoji (unicode or name:id) for reaction routes."""
    return quote(emoji, safe="")
