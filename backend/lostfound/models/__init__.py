from .user import User
from .item import Item
from .match import Match
from .notification import Notification
from .device_token import DeviceToken
from .conversation import Conversation
from .message import Message
from .outbox_event import OutboxEvent

__all__ = [
    "User",
    "Item",
    "Match",
    "Notification",
    "DeviceToken",
    "Conversation",
    "Message",
    "OutboxEvent",
]
