"""Live-channel event payloads.

Each server->client event has exactly one schema (``SERVER_EVENTS``); the
publisher refuses to emit an event name that is not listed here. Inbound
client events are loaded through their own schemas before use.
"""
from marshmallow import EXCLUDE, Schema, fields, pre_load

NEW_NOTIFICATION = "new_notification"
NEW_MESSAGE = "new_message"
USER_TYPING = "user_typing"


class NotificationSchema(Schema):
    id = fields.Int()
    userId = fields.Int(attribute="user_id")
    type = fields.Str()
    title = fields.Str()
    message = fields.Str()
    relatedItemId = fields.Int(attribute="related_item_id", allow_none=True)
    isRead = fields.Bool(attribute="is_read")
    createdAt = fields.DateTime(attribute="created_at")


class MessageSchema(Schema):
    id = fields.Int()
    conversationId = fields.Int(attribute="conversation_id")
    senderId = fields.Int(attribute="sender_id")
    messageText = fields.Str(attribute="message_text")
    isRead = fields.Bool(attribute="is_read")
    createdAt = fields.DateTime(attribute="created_at")
    senderName = fields.Str(attribute="sender.name", allow_none=True)
    senderPhoto = fields.Str(attribute="sender.profile_photo", allow_none=True)


class UserTypingSchema(Schema):
    conversationId = fields.Int(attribute="conversation_id")
    userId = fields.Int(attribute="user_id")
    isTyping = fields.Bool(attribute="is_typing")


class ChatRoomSchema(Schema):
    """``join_chat`` / ``leave_chat``: a bare conversation id or ``{"chatId": id}``."""

    class Meta:
        unknown = EXCLUDE

    conversation_id = fields.Int(required=True, data_key="chatId")

    @pre_load
    def _wrap_bare_id(self, data, **kwargs):
        if isinstance(data, (int, str)):
            return {"chatId": data}
        return data


class TypingSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    conversation_id = fields.Int(required=True, data_key="chatId")
    is_typing = fields.Bool(required=True, data_key="isTyping")


SERVER_EVENTS = {
    NEW_NOTIFICATION: NotificationSchema(),
    NEW_MESSAGE: MessageSchema(),
    USER_TYPING: UserTypingSchema(),
}
