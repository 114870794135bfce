from marshmallow import EXCLUDE, Schema, fields, validate


class DeviceTokenSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    token = fields.Str(required=True, validate=validate.Length(min=1, max=255))
    platform = fields.Str(allow_none=True, validate=validate.Length(max=32))


class PushSendSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    user_id = fields.Int(required=True, data_key="userId")
    title = fields.Str(required=True, validate=validate.Length(min=1))
    body = fields.Str(required=True, validate=validate.Length(min=1))
    data = fields.Dict(load_default=dict)
