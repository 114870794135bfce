from flask import Blueprint, jsonify, request, g

from ...schemas.chat import ConversationSchema
from ...schemas.item import ItemSchema
from ...schemas.match import MatchedItemSchema
from ...security import login_required
from ..matches.engine import get_item_matches
from . import service

bp = Blueprint("items", __name__, url_prefix="/items")

_item_schema = ItemSchema()
_matched_schema = MatchedItemSchema(many=True)
_conversation_schema = ConversationSchema()


@bp.post("")
@login_required()
def create_item():
    """Report a lost or found item.

    The item is stored before matching runs; ``matches`` is the number of
    accepted matches when matching already ran, ``matchingPending`` tells the
    client it will happen in the background.
    """
    item, matches = service.create_item(g.current_user_id, request.get_json(silent=True) or {})
    return (
        jsonify({
            "item": _item_schema.dump(item),
            "matches": len(matches) if matches is not None else 0,
            "matchingPending": matches is None,
        }),
        201,
    )


@bp.post("/<int:item_id>/claim")
@login_required()
def claim_item(item_id: int):
    conv = service.claim_item(item_id, g.current_user_id)
    return jsonify({"message": "Notification sent to item owner", "chatId": conv.id, "chat": _conversation_schema.dump(conv)})


@bp.put("/<int:item_id>/resolve")
@login_required()
def resolve_item(item_id: int):
    item = service.resolve_item(item_id, g.current_user_id)
    return jsonify({"message": "Item marked as resolved", "item": _item_schema.dump(item)})


@bp.get("/<int:item_id>/matches")
@login_required()
def item_matches(item_id: int):
    results = get_item_matches(item_id, g.current_user_id)
    return jsonify({"matches": _matched_schema.dump(results)})
