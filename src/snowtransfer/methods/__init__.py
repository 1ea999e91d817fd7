"""Resource-method wrappers: build a RouteDescriptor, hand it to the requester."""

from snowtransfer.methods.base import MethodGroup, Requester
from snowtransfer.methods.channel import ChannelMethods
from snowtransfer.methods.guild import GuildMethods
from snowtransfer.methods.user import UserMethods
from snowtransfer.methods.webhook import WebhookMethods

__all__ = [
    "ChannelMethods",
    "GuildMethods",
    "MethodGroup",
    "Requester",
    "UserMethods",
    "WebhookMethods",
]
