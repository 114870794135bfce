from __future__ import annotations

from flask import Blueprint, jsonify, request, g

from ...schemas.chat import ConversationCreateSchema, ConversationSchema, MessageCreateSchema
from ...schemas.events import MessageSchema
from ...security import login_required
from . import service

bp = Blueprint("chats", __name__, url_prefix="/chats")

_create_schema = ConversationCreateSchema()
_message_in_schema = MessageCreateSchema()
_conversation_schema = ConversationSchema()
_message_schema = MessageSchema()
_messages_schema = MessageSchema(many=True)


@bp.get("")
@login_required(verified=True)
def list_chats():
    rows = service.list_conversations(g.current_user_id)
    chats = []
    for row in rows:
        entry = _conversation_schema.dump(row["conversation"])
        entry.update({k: v for k, v in row.items() if k != "conversation"})
        chats.append(entry)
    return jsonify({"count": len(chats), "chats": chats})


@bp.get("/unread-count")
@login_required(verified=True)
def unread_count():
    return jsonify({"unreadCount": service.get_unread_count(g.current_user_id)})


@bp.post("")
@login_required(verified=True)
def create_chat():
    data = _create_schema.load(request.get_json(silent=True) or {})
    conv, created = service.get_or_create_conversation(data["item_id"], g.current_user_id, data["recipient_id"])
    body = {
        "message": "Chat created successfully" if created else "Chat already exists",
        "chatId": conv.id,
    }
    return jsonify(body), 201 if created else 200


@bp.get("/<int:chat_id>")
@login_required(verified=True)
def get_chat(chat_id: int):
    conv, messages = service.get_conversation(chat_id, g.current_user_id)
    chat = _conversation_schema.dump(conv)
    chat["otherUserId"] = conv.other_participant(g.current_user_id)
    return jsonify({"chat": chat, "messages": _messages_schema.dump(messages)})


@bp.post("/<int:chat_id>/messages")
@login_required(verified=True)
def send_message(chat_id: int):
    data = _message_in_schema.load(request.get_json(silent=True) or {})
    message = service.send_message(chat_id, g.current_user_id, data["message_text"])
    return jsonify({"message": _message_schema.dump(message)}), 201


@bp.put("/<int:chat_id>/read")
@login_required(verified=True)
def mark_read(chat_id: int):
    updated = service.mark_read(chat_id, g.current_user_id)
    return jsonify({"message": "Messages marked as read", "updated": updated})


@bp.delete("/<int:chat_id>")
@login_required(verified=True)
def delete_chat(chat_id: int):
    service.delete_conversation(chat_id, g.current_user_id)
    return jsonify({"message": "Chat deleted successfully"})
