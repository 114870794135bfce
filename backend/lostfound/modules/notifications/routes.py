from __future__ import annotations

from flask import Blueprint, jsonify, request, g

from ...schemas.device_token import DeviceTokenSchema, PushSendSchema
from ...schemas.events import NotificationSchema
from ...security import login_required
from . import push, service

bp = Blueprint("notifications", __name__, url_prefix="/notifications")

_notification_schema = NotificationSchema()
_notifications_schema = NotificationSchema(many=True)
_token_schema = DeviceTokenSchema()
_push_schema = PushSendSchema()


@bp.get("")
@login_required(verified=True)
def list_notifications():
    try:
        limit = int(request.args.get("limit", 50))
    except (TypeError, ValueError):
        limit = 50
    rows = service.list_notifications(g.current_user_id, limit)
    return jsonify({"count": len(rows), "notifications": _notifications_schema.dump(rows)})


@bp.get("/unread-count")
@login_required(verified=True)
def unread_count():
    return jsonify({"unreadCount": service.unread_count(g.current_user_id)})


@bp.put("/read-all")
@login_required(verified=True)
def mark_all_read():
    updated = service.mark_all_read(g.current_user_id)
    return jsonify({"message": "All notifications marked as read", "updated": updated})


@bp.put("/<int:notif_id>/read")
@login_required(verified=True)
def mark_read(notif_id: int):
    n = service.mark_read(notif_id, g.current_user_id)
    return jsonify({"message": "Notification marked as read", "notification": _notification_schema.dump(n)})


@bp.delete("/<int:notif_id>")
@login_required(verified=True)
def delete_notification(notif_id: int):
    service.delete_notification(notif_id, g.current_user_id)
    return jsonify({"message": "Notification deleted"})


@bp.post("/register-token")
@login_required()
def register_token():
    data = _token_schema.load(request.get_json(silent=True) or {})
    push.register_device_token(g.current_user_id, data["token"], data.get("platform"))
    return jsonify({"message": "Token registered"})


@bp.delete("/register-token")
@login_required()
def unregister_token():
    data = _token_schema.load(request.get_json(silent=True) or {})
    removed = push.remove_device_token(data["token"], user_id=g.current_user_id)
    return jsonify({"message": "Token removed", "removed": removed})


@bp.post("/send")
@login_required(admin=True)
def send_push():
    """Push directly to one user's devices, without storing a notification (admin/internal)."""
    data = _push_schema.load(request.get_json(silent=True) or {})
    result = push.send_push_to_user(data["user_id"], data["title"], data["body"], data["data"])
    return jsonify({
        "message": "Push sent",
        "result": {"sent": result.sent, "errors": result.errors, "invalidTokens": result.invalid_tokens},
    })
