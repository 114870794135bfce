from marshmallow import Schema, fields

from .item import ItemSchema


class MatchedItemSchema(Schema):
    """One side of a match as seen from the other item: the candidate plus its score."""

    matchId = fields.Int(attribute="match.id")
    score = fields.Int()
    matchedAt = fields.DateTime(attribute="match.created_at")
    item = fields.Nested(ItemSchema)
