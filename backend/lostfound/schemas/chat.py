from marshmallow import EXCLUDE, Schema, fields, validate


class ConversationCreateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    item_id = fields.Int(required=True, data_key="itemId", validate=validate.Range(min=1))
    recipient_id = fields.Int(required=True, data_key="recipientId", validate=validate.Range(min=1))


class MessageCreateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    message_text = fields.Str(required=True)


class ConversationSchema(Schema):
    id = fields.Int()
    itemId = fields.Int(attribute="item_id")
    itemName = fields.Str(attribute="item.item_name", allow_none=True)
    itemType = fields.Str(attribute="item.type", allow_none=True)
    lastMessage = fields.Str(attribute="last_message", allow_none=True)
    lastMessageTime = fields.DateTime(attribute="last_message_time", allow_none=True)
    createdAt = fields.DateTime(attribute="created_at")
