"""Normalized messages and the shared recent-message cache."""

from chanproxy.messages.cache import DEFAULT_CAPACITY, MessageCache
from chanproxy.messages.models import ChannelType, Message

__all__ = [
    "DEFAULT_CAPACITY",
    "ChannelType",
    "Message",
    "MessageCache",
]
