from __future__ import annotations

import logging

from flask import request
from flask_socketio import ConnectionRefusedError, SocketIO, join_room, leave_room
from marshmallow import ValidationError as SchemaValidationError

from ...errors import DeliveryError, NotFoundOrForbidden
from ...extensions import db
from ...models.user import User
from ...schemas.events import USER_TYPING, ChatRoomSchema, TypingSchema
from ...security import verify_token
from .publisher import publish
from .registry import chat_room, get_registry

logger = logging.getLogger(__name__)

_room_schema = ChatRoomSchema()
_typing_schema = TypingSchema()


def _token_from(auth) -> str | None:
    if isinstance(auth, dict):
        token = auth.get("token")
        if token:
            return str(token)
    # Fallback for clients that can only set headers
    header = request.headers.get("Authorization") or ""
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return None


def on_connect(auth=None):
    uid, _role = verify_token(_token_from(auth))
    if uid is None:
        logger.info("socket handshake rejected: invalid or missing token")
        raise ConnectionRefusedError("Authentication error")
    if db.session.get(User, uid) is None:
        logger.info("socket handshake rejected: unknown user %s", uid)
        raise ConnectionRefusedError("Authentication error")
    room = get_registry().connect(request.sid, uid)
    join_room(room)
    logger.info("user %s connected (sid=%s)", uid, request.sid)


def on_join_chat(data=None):
    registry = get_registry()
    uid = registry.user_for(request.sid)
    if uid is None:
        return {"ok": False, "error": "Not connected"}
    try:
        conversation_id = _room_schema.load(data)["conversation_id"]
    except SchemaValidationError:
        return {"ok": False, "error": "Invalid chatId"}

    from ..chats.service import get_participant_conversation

    try:
        get_participant_conversation(conversation_id, uid)
    except NotFoundOrForbidden:
        logger.info("user %s denied join of chat %s", uid, conversation_id)
        return {"ok": False, "error": "Chat not found or access denied"}
    room = chat_room(conversation_id)
    join_room(room)
    registry.join(request.sid, room)
    logger.debug("user %s joined chat %s", uid, conversation_id)
    return {"ok": True, "room": room}


def on_leave_chat(data=None):
    registry = get_registry()
    try:
        conversation_id = _room_schema.load(data)["conversation_id"]
    except SchemaValidationError:
        return {"ok": False, "error": "Invalid chatId"}
    room = chat_room(conversation_id)
    leave_room(room)
    registry.leave(request.sid, room)
    logger.debug("user %s left chat %s", registry.user_for(request.sid), conversation_id)
    return {"ok": True}


def on_typing(data=None):
    registry = get_registry()
    uid = registry.user_for(request.sid)
    if uid is None:
        return {"ok": False}
    try:
        evt = _typing_schema.load(data or {})
    except SchemaValidationError:
        return {"ok": False, "error": "Invalid typing payload"}
    room = chat_room(evt["conversation_id"])
    # Only relay for rooms this connection actually joined
    if not registry.in_room(request.sid, room):
        return {"ok": False}
    try:
        publish(
            USER_TYPING,
            {"conversation_id": evt["conversation_id"], "user_id": uid, "is_typing": evt["is_typing"]},
            room,
            skip_sid=request.sid,
        )
    except DeliveryError:
        logger.warning("typing relay failed for chat %s", evt["conversation_id"], exc_info=True)
        return {"ok": False}
    return {"ok": True}


def on_disconnect(reason=None):
    registry = get_registry()
    uid = registry.user_for(request.sid)
    rooms = registry.disconnect(request.sid)
    logger.info("user %s disconnected (sid=%s, rooms=%d)", uid, request.sid, len(rooms))


def register_socket_handlers(sio: SocketIO) -> None:
    # Registered per app (not via decorators) so every init_app'd server gets them
    sio.on_event("connect", on_connect)
    sio.on_event("join_chat", on_join_chat)
    sio.on_event("leave_chat", on_leave_chat)
    sio.on_event("typing", on_typing)
    sio.on_event("disconnect", on_disconnect)
