from marshmallow import EXCLUDE, Schema, fields, pre_load, validate

from ..models.enums import ITEM_TYPES


class ItemCreateSchema(Schema):
    """Inbound item report. Keys follow the mobile client's form field names."""

    class Meta:
        unknown = EXCLUDE

    type = fields.Str(required=True, validate=validate.OneOf(ITEM_TYPES))
    item_name = fields.Str(required=True, validate=validate.Length(min=1, max=200))
    category = fields.Str(required=True, validate=validate.Length(min=1, max=100))
    color = fields.Str(required=True, validate=validate.Length(min=1, max=50))
    brand = fields.Str(allow_none=True, validate=validate.Length(max=100))
    location = fields.Str(required=True, validate=validate.Length(min=1, max=200))
    occurred_on = fields.Date(required=True, data_key="date")
    occurred_time = fields.Time(allow_none=True, data_key="time")
    description = fields.Str(allow_none=True)

    @pre_load
    def _strip_strings(self, data, **kwargs):
        if not isinstance(data, dict):
            return data
        cleaned = {}
        for key, value in data.items():
            if isinstance(value, str):
                value = value.strip()
                if value == "" and key in ("brand", "time", "description"):
                    value = None
            cleaned[key] = value
        return cleaned


class ItemSchema(Schema):
    id = fields.Int(dump_only=True)
    userId = fields.Int(attribute="user_id")
    type = fields.Str()
    itemName = fields.Str(attribute="item_name")
    category = fields.Str()
    color = fields.Str()
    brand = fields.Str(allow_none=True)
    location = fields.Str()
    date = fields.Date(attribute="occurred_on")
    time = fields.Time(attribute="occurred_time", allow_none=True)
    description = fields.Str(allow_none=True)
    status = fields.Str()
    createdAt = fields.DateTime(attribute="created_at")
