"""Notification fan-out.

A notification is committed first; then the live channel and the push channel
are each attempted on their own. Neither delivery path can fail the call or
undo the row. Both channels fire even when the user is connected.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import List

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ...errors import DeliveryError, NotFoundOrForbidden, PersistenceError, ValidationError
from ...extensions import db
from ...models.enums import NOTIFICATION_TYPES
from ...models.notification import Notification
from ...models.types import utcnow
from ...models.user import User
from ...schemas.events import NEW_NOTIFICATION
from ..realtime.publisher import publish_to_user
from . import push

logger = logging.getLogger(__name__)


def _deliver_live(notification: Notification) -> bool:
    try:
        return publish_to_user(NEW_NOTIFICATION, notification, notification.user_id)
    except DeliveryError:
        logger.warning("live delivery failed for notification %s", notification.id, exc_info=True)
        return False


def _deliver_push(notification: Notification) -> push.PushResult | None:
    try:
        tokens = push.tokens_for_user(notification.user_id)
        logger.debug("notification %s: %d device token(s) for user %s", notification.id, len(tokens), notification.user_id)
        if not tokens:
            return None
        result = push.send_batch(
            tokens,
            push.PushMessage(
                title=notification.title,
                body=notification.message,
                data={"relatedItemId": notification.related_item_id, "type": notification.type},
            ),
        )
        if result.invalid_tokens:
            push.remove_device_tokens(result.invalid_tokens)
        return result
    except Exception:
        logger.error("push delivery failed for notification %s", notification.id, exc_info=True)
        return None


def create_notification(
    user_id: int,
    type: str,
    title: str,
    message: str,
    related_item_id: int | None = None,
) -> Notification:
    if type not in NOTIFICATION_TYPES:
        raise ValidationError(f"Unknown notification type: {type}")
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        related_item_id=related_item_id,
    )
    try:
        db.session.add(notification)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Error creating notification") from e

    _deliver_live(notification)
    _deliver_push(notification)
    return notification


def notify_all_users(
    type: str,
    title: str,
    message: str,
    related_item_id: int | None,
    exclude_user_id: int | None,
) -> List[Notification]:
    """Create one notification per verified user except ``exclude_user_id``.

    Users who already hold a ``type`` notification for ``related_item_id`` are
    skipped, so a broadcast retried after a partial failure only reaches the
    users it missed. Returns the notifications created by this call.
    """
    try:
        q = db.session.query(User.id).filter(User.is_verified.is_(True))
        if exclude_user_id is not None:
            q = q.filter(User.id != exclude_user_id)
        if related_item_id is not None:
            already = select(Notification.user_id).where(
                Notification.type == type,
                Notification.related_item_id == related_item_id,
            )
            q = q.filter(User.id.not_in(already))
        user_ids = [r[0] for r in q.order_by(User.id).all()]
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Error notifying all users") from e

    notifications = []
    for uid in user_ids:
        notifications.append(create_notification(uid, type, title, message, related_item_id))
    logger.info("broadcast %s to %d user(s)", type, len(notifications))
    return notifications


def list_notifications(user_id: int, limit: int = 50) -> List[Notification]:
    limit = max(1, min(100, int(limit)))
    return (
        Notification.query
        .filter(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )


def unread_count(user_id: int) -> int:
    return Notification.query.filter(Notification.user_id == user_id, Notification.is_read.is_(False)).count()


def _owned(notification_id: int, user_id: int) -> Notification:
    n = db.session.get(Notification, notification_id)
    if n is None or int(n.user_id) != int(user_id):
        raise NotFoundOrForbidden("Notification not found")
    return n


def mark_read(notification_id: int, user_id: int) -> Notification:
    n = _owned(notification_id, user_id)
    if not n.is_read:
        try:
            n.is_read = True
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError("Error marking notification as read") from e
    return n


def mark_all_read(user_id: int) -> int:
    try:
        updated = (
            Notification.query
            .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
            .update({Notification.is_read: True}, synchronize_session=False)
        )
        db.session.commit()
        return updated
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Error marking notifications as read") from e


def delete_notification(notification_id: int, user_id: int) -> None:
    n = _owned(notification_id, user_id)
    try:
        db.session.delete(n)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Error deleting notification") from e


def clear_old_notifications(days: int | None = None) -> int:
    if days is None:
        days = int(current_app.config.get("NOTIFICATION_RETENTION_DAYS", 30))
    cutoff = utcnow() - timedelta(days=days)
    try:
        removed = Notification.query.filter(Notification.created_at < cutoff).delete(synchronize_session=False)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Error clearing old notifications") from e
    logger.info("cleared %d notification(s) older than %d days", removed, days)
    return removed
