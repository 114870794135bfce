"""Conversation relay: message persistence, room broadcast, recipient notification."""
from __future__ import annotations

import logging
from typing import List, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ...errors import DeliveryError, NotFoundOrForbidden, PersistenceError, ValidationError
from ...extensions import db
from ...models.conversation import Conversation
from ...models.item import Item
from ...models.message import Message
from ...models.types import utcnow
from ...models.user import User
from ...schemas.events import NEW_MESSAGE
from ..notifications.service import create_notification
from ..realtime.publisher import publish
from ..realtime.registry import chat_room

logger = logging.getLogger(__name__)

_NOT_FOUND = "Chat not found or access denied"


def get_participant_conversation(conversation_id: int, user_id: int) -> Conversation:
    """The conversation if ``user_id`` takes part in it; absent and foreign look the same."""
    try:
        conv = db.session.get(Conversation, conversation_id)
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Error fetching chat") from e
    if conv is None or not conv.has_participant(user_id):
        raise NotFoundOrForbidden(_NOT_FOUND)
    return conv


def get_or_create_conversation(item_id: int, user_id: int, recipient_id: int) -> Tuple[Conversation, bool]:
    if not item_id or not recipient_id:
        raise ValidationError("Please provide itemId and recipientId")
    if int(recipient_id) == int(user_id):
        raise ValidationError("Cannot start a chat with yourself")
    if db.session.get(Item, item_id) is None:
        raise NotFoundOrForbidden("Item not found")
    if db.session.get(User, recipient_id) is None:
        raise NotFoundOrForbidden("Recipient not found")

    low, high = sorted((int(user_id), int(recipient_id)))
    existing = Conversation.query.filter_by(item_id=item_id, user1_id=low, user2_id=high).first()
    if existing is not None:
        return existing, False
    conv = Conversation(item_id=item_id, user1_id=low, user2_id=high)
    try:
        db.session.add(conv)
        db.session.commit()
    except IntegrityError:
        # Created concurrently by the other participant
        db.session.rollback()
        existing = Conversation.query.filter_by(item_id=item_id, user1_id=low, user2_id=high).first()
        if existing is None:
            raise PersistenceError("Error creating chat")
        return existing, False
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Error creating chat") from e
    logger.info("chat %s created for item %s between %s and %s", conv.id, item_id, low, high)
    return conv, True


def send_message(conversation_id: int, sender_id: int, text: str | None) -> Message:
    if text is None or not str(text).strip():
        raise ValidationError("Message text is required")
    conv = get_participant_conversation(conversation_id, sender_id)
    recipient_id = conv.other_participant(sender_id)

    message = Message(conversation_id=conv.id, sender_id=sender_id, message_text=text)
    try:
        db.session.add(message)
        db.session.flush()
        conv.last_message = text
        conv.last_message_time = message.created_at or utcnow()
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Error sending message") from e

    try:
        publish(NEW_MESSAGE, message, chat_room(conv.id))
    except DeliveryError:
        logger.warning("broadcast of message %s to chat %s failed", message.id, conv.id, exc_info=True)

    sender = message.sender
    try:
        create_notification(
            recipient_id,
            "new_message",
            "New Message",
            f"{(sender.name if sender else None) or 'Someone'} sent you a message",
            conv.item_id,
        )
    except PersistenceError:
        # The message itself is stored; a lost notification must not fail the send
        logger.error("notification for message %s could not be stored", message.id, exc_info=True)
    return message


def mark_read(conversation_id: int, user_id: int) -> int:
    """Flip every message from the other participant to read. Returns rows changed."""
    conv = get_participant_conversation(conversation_id, user_id)
    try:
        updated = (
            Message.query
            .filter(
                Message.conversation_id == conv.id,
                Message.sender_id != user_id,
                Message.is_read.is_(False),
            )
            .update({Message.is_read: True}, synchronize_session=False)
        )
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Error marking messages as read") from e
    return updated


def _participant_filter(user_id: int):
    return or_(Conversation.user1_id == user_id, Conversation.user2_id == user_id)


def get_unread_count(user_id: int) -> int:
    try:
        return (
            db.session.query(func.count(Message.id))
            .join(Conversation, Message.conversation_id == Conversation.id)
            .filter(_participant_filter(user_id), Message.sender_id != user_id, Message.is_read.is_(False))
            .scalar()
        ) or 0
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Error getting unread count") from e


def list_conversations(user_id: int) -> List[dict]:
    """The user's chats with the other party and per-chat unread count, latest activity first."""
    unread = (
        db.session.query(Message.conversation_id.label("conversation_id"), func.count(Message.id).label("unread"))
        .filter(Message.sender_id != user_id, Message.is_read.is_(False))
        .group_by(Message.conversation_id)
        .subquery()
    )
    rows = (
        db.session.query(Conversation, func.coalesce(unread.c.unread, 0))
        .outerjoin(unread, unread.c.conversation_id == Conversation.id)
        .filter(_participant_filter(user_id))
        .order_by(func.coalesce(Conversation.last_message_time, Conversation.created_at).desc(), Conversation.id.desc())
        .all()
    )
    out = []
    for conv, unread_count in rows:
        other_id = conv.other_participant(user_id)
        other = conv.user2 if int(conv.user2_id) == other_id else conv.user1
        out.append({
            "conversation": conv,
            "otherUserId": other_id,
            "otherUserName": other.name if other else None,
            "otherUserPhoto": other.profile_photo if other else None,
            "unreadCount": int(unread_count or 0),
        })
    return out


def get_conversation(conversation_id: int, user_id: int) -> Tuple[Conversation, List[Message]]:
    """Load a chat with its messages in send order; opening it marks incoming messages read."""
    conv = get_participant_conversation(conversation_id, user_id)
    mark_read(conv.id, user_id)
    messages = (
        Message.query
        .filter(Message.conversation_id == conv.id)
        .order_by(Message.id.asc())
        .all()
    )
    return conv, messages


def delete_conversation(conversation_id: int, user_id: int) -> None:
    conv = get_participant_conversation(conversation_id, user_id)
    try:
        db.session.delete(conv)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Error deleting chat") from e
