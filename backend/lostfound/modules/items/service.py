from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from marshmallow import ValidationError as SchemaValidationError
from sqlalchemy.exc import SQLAlchemyError

from ...errors import NotFoundOrForbidden, PersistenceError, ValidationError
from ...extensions import db
from ...models.conversation import Conversation
from ...models.item import Item
from ...schemas.item import ItemCreateSchema
from ..chats.service import get_or_create_conversation
from ..matches.engine import MatchResult, find_matches
from ..notifications.service import create_notification, notify_all_users
from ..outbox import service as outbox

logger = logging.getLogger(__name__)

MATCH_TOPIC = "item.match"
BROADCAST_TOPIC = "item.broadcast"

_create_schema = ItemCreateSchema()


def create_item(user_id: int, data: dict | None) -> Tuple[Item, Optional[List[MatchResult]]]:
    """Store a new report and schedule matching and the new-item broadcast.

    The item and both outbox events are committed together. The second element
    is the list of accepted matches when matching ran inline and succeeded,
    otherwise None (it will run later from the outbox).
    """
    try:
        fields = _create_schema.load(data or {})
    except SchemaValidationError as e:
        raise ValidationError.from_schema(e)

    item = Item(user_id=user_id, status="active", **fields)
    try:
        db.session.add(item)
        db.session.flush()
        events = [
            outbox.enqueue(MATCH_TOPIC, {"itemId": item.id}),
            outbox.enqueue(BROADCAST_TOPIC, {"itemId": item.id}),
        ]
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Error creating item") from e
    logger.info("item %s (%s) created by user %s", item.id, item.type, user_id)

    results = outbox.dispatch(events)
    return item, results.get(MATCH_TOPIC)


@outbox.handler(MATCH_TOPIC)
def _run_matching(payload: dict) -> List[MatchResult]:
    item = db.session.get(Item, payload.get("itemId"))
    if item is None or item.status != "active":
        return []
    return find_matches(item)


@outbox.handler(BROADCAST_TOPIC)
def _broadcast_new_item(payload: dict) -> list:
    item = db.session.get(Item, payload.get("itemId"))
    if item is None:
        return []
    return notify_all_users(
        "new_item",
        f"New {item.type} item posted",
        f"{item.item_name} was reported {item.type} at {item.location}",
        item.id,
        item.user_id,
    )


def claim_item(item_id: int, user_id: int) -> Conversation:
    """Open (or reuse) a chat with the owner and tell the owner about the claim."""
    item = db.session.get(Item, item_id)
    if item is None:
        raise NotFoundOrForbidden("Item not found")
    if int(item.user_id) == int(user_id):
        raise ValidationError("You cannot claim your own item")
    if item.status != "active":
        raise ValidationError("Item is already resolved")

    conv, _created = get_or_create_conversation(item.id, user_id, item.user_id)
    message = (
        f"Someone found your lost item: {item.item_name}"
        if item.type == "lost"
        else f"Someone claims your found item: {item.item_name}"
    )
    try:
        create_notification(item.user_id, "item_claimed", "Item Claim Notification", message, item.id)
    except PersistenceError:
        logger.error("claim notification for item %s could not be stored", item.id, exc_info=True)
    return conv


def resolve_item(item_id: int, user_id: int) -> Item:
    item = db.session.get(Item, item_id)
    if item is None or int(item.user_id) != int(user_id):
        raise NotFoundOrForbidden("Item not found or unauthorized")
    if item.status != "resolved":
        try:
            item.status = "resolved"
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError("Error resolving item") from e
    return item
