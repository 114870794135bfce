from __future__ import annotations

import logging
from typing import Any

from flask import current_app

from ...errors import DeliveryError
from ...extensions import socketio
from ...schemas.events import SERVER_EVENTS
from .registry import get_registry, user_room

logger = logging.getLogger(__name__)


def publish(event: str, obj: Any, room: str, *, skip_sid: str | None = None) -> dict:
    """Serialize ``obj`` with the event's schema and emit it to ``room``.

    Raises DeliveryError if the emit fails; callers decide whether that matters.
    """
    schema = SERVER_EVENTS.get(event)
    if schema is None:
        raise ValueError(f"Unknown live event: {event}")
    payload = schema.dump(obj)
    try:
        socketio.emit(event, payload, to=room, skip_sid=skip_sid)
    except Exception as e:
        raise DeliveryError(f"Failed to publish {event} to {room}") from e
    logger.debug("published %s to %s", event, room)
    return payload


def publish_to_user(event: str, obj: Any, user_id: int) -> bool:
    """Publish to the user's personal room. Returns False when nothing was emitted.

    The registry only knows this process's sockets, so it is used to skip the emit
    only when no message queue is configured. With a queue (several web workers, or
    a Celery worker with no sockets at all) the emit always goes to the queue.
    """
    if not current_app.config.get("SOCKETIO_MESSAGE_QUEUE") and not get_registry().is_online(user_id):
        return False
    publish(event, obj, user_room(user_id))
    return True
