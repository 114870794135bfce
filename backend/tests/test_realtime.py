import pytest

from lostfound.extensions import socketio
from lostfound.modules.chats.service import get_or_create_conversation, send_message
from lostfound.modules.notifications import push
from lostfound.modules.notifications.service import create_notification
from lostfound.modules.realtime.publisher import publish
from lostfound.modules.realtime.registry import SessionRegistry, get_registry
from lostfound.security import issue_token


@pytest.fixture
def chat(make_user, make_item):
    alice, bob = make_user("Alice"), make_user("Bob")
    item = make_item(alice)
    conv, _ = get_or_create_conversation(item.id, bob.id, alice.id)
    return conv, alice, bob


def test_handshake_without_token_is_refused(app, socket_client):
    client = socket_client()

    assert not client.is_connected()
    assert get_registry().connection_count() == 0


def test_handshake_with_bad_token_is_refused(app, socket_client):
    client = socket_client(token="not-a-token")

    assert not client.is_connected()


def test_token_for_unknown_user_is_refused(app, socket_client):
    client = socket_client(token=issue_token(4242))

    assert not client.is_connected()


def test_connect_and_disconnect_track_presence(app, make_user, socket_client):
    alice = make_user()
    registry = get_registry()

    client = socket_client(alice)

    assert client.is_connected()
    assert registry.is_online(alice.id)
    client.disconnect()
    assert not registry.is_online(alice.id)
    assert registry.connection_count() == 0


def test_two_connections_for_one_user(app, make_user, socket_client):
    alice = make_user()
    registry = get_registry()
    phone, tablet = socket_client(alice), socket_client(alice)

    phone.disconnect()

    assert registry.is_online(alice.id)
    tablet.disconnect()
    assert not registry.is_online(alice.id)


def test_live_notification_reaches_connected_user(app, make_user, socket_client, received):
    alice = make_user()
    client = socket_client(alice)
    client.get_received()

    n = create_notification(alice.id, "match_found", "Possible Match Found!", "A match", 9)

    payloads = received(client, "new_notification")
    assert len(payloads) == 1
    assert payloads[0]["id"] == n.id
    assert payloads[0]["relatedItemId"] == 9
    assert payloads[0]["isRead"] is False


def test_push_also_goes_out_while_connected(app, make_user, socket_client, gateway):
    alice = make_user()
    push.register_device_token(alice.id, "tok")
    socket_client(alice)

    create_notification(alice.id, "new_item", "t", "m")

    assert gateway.tokens_sent == ["tok"]


def test_emit_failure_does_not_fail_notification(app, make_user, socket_client, monkeypatch):
    alice = make_user()
    socket_client(alice)

    def broken(*args, **kwargs):
        raise RuntimeError("transport closed")

    monkeypatch.setattr(socketio, "emit", broken)

    n = create_notification(alice.id, "new_item", "t", "m")

    assert n.id is not None


def test_offline_user_gets_no_emit_without_a_message_queue(app, make_user, monkeypatch):
    alice = make_user()
    emitted = []
    monkeypatch.setattr(socketio, "emit", lambda event, payload, **kw: emitted.append((event, kw["to"])))

    create_notification(alice.id, "new_item", "t", "m")

    assert emitted == []


def test_message_queue_emits_even_when_no_local_socket(app, make_user, monkeypatch):
    # another web worker (or a Celery worker) may hold the user's socket
    app.config["SOCKETIO_MESSAGE_QUEUE"] = "redis://localhost:6379/0"
    alice = make_user()
    emitted = []
    monkeypatch.setattr(socketio, "emit", lambda event, payload, **kw: emitted.append((event, kw["to"])))

    n = create_notification(alice.id, "match_found", "Possible Match Found!", "A match", 4)

    assert not get_registry().is_online(alice.id)
    assert n.id is not None
    assert emitted == [("new_notification", f"user:{alice.id}")]


def test_outsider_cannot_join_conversation(chat, make_user, socket_client):
    conv, _, _ = chat
    mallory = socket_client(make_user())

    ack = mallory.emit("join_chat", {"chatId": conv.id}, callback=True)

    assert ack["ok"] is False


def test_join_accepts_bare_id(chat, socket_client):
    conv, alice, _ = chat
    client = socket_client(alice)

    ack = client.emit("join_chat", conv.id, callback=True)

    assert ack == {"ok": True, "room": f"chat:{conv.id}"}


def test_typing_is_relayed_to_the_other_participant_only(chat, socket_client, received):
    conv, alice, bob = chat
    a, b = socket_client(alice), socket_client(bob)
    for c in (a, b):
        c.emit("join_chat", {"chatId": conv.id}, callback=True)
        c.get_received()

    ack = b.emit("typing", {"chatId": conv.id, "isTyping": True}, callback=True)

    assert ack == {"ok": True}
    assert received(a, "user_typing") == [{"conversationId": conv.id, "userId": bob.id, "isTyping": True}]
    assert received(b, "user_typing") == []


def test_typing_does_not_leak_across_conversations(chat, make_user, make_item, socket_client, received):
    conv, alice, bob = chat
    carol = make_user("Carol")
    other, _ = get_or_create_conversation(make_item(carol).id, alice.id, carol.id)
    a, b, c = socket_client(alice), socket_client(bob), socket_client(carol)
    a.emit("join_chat", {"chatId": conv.id}, callback=True)
    b.emit("join_chat", {"chatId": conv.id}, callback=True)
    c.emit("join_chat", {"chatId": other.id}, callback=True)
    for client in (a, b, c):
        client.get_received()

    b.emit("typing", {"chatId": conv.id, "isTyping": True}, callback=True)

    assert len(received(a, "user_typing")) == 1
    assert received(c, "user_typing") == []


def test_typing_in_a_room_not_joined_is_dropped(chat, socket_client, received):
    conv, alice, bob = chat
    a, b = socket_client(alice), socket_client(bob)
    a.emit("join_chat", {"chatId": conv.id}, callback=True)
    a.get_received()

    ack = b.emit("typing", {"chatId": conv.id, "isTyping": True}, callback=True)

    assert ack == {"ok": False}
    assert received(a, "user_typing") == []


def test_leave_chat_stops_room_events(chat, socket_client, received):
    conv, alice, bob = chat
    a = socket_client(alice)
    a.emit("join_chat", {"chatId": conv.id}, callback=True)
    a.emit("leave_chat", {"chatId": conv.id}, callback=True)
    a.get_received()

    send_message(conv.id, alice.id, "note to self")

    assert received(a, "new_message") == []


def test_sent_message_reaches_room_and_recipient(chat, client, auth_headers, socket_client, received):
    conv, alice, bob = chat
    a = socket_client(alice)
    a.emit("join_chat", {"chatId": conv.id}, callback=True)
    a.get_received()

    resp = client.post(f"/api/v1/chats/{conv.id}/messages", json={"message_text": "Found it!"}, headers=auth_headers(bob))

    assert resp.status_code == 201
    messages = received(a, "new_message")
    assert len(messages) == 1
    assert messages[0]["messageText"] == "Found it!"
    assert messages[0]["senderId"] == bob.id
    assert messages[0]["senderName"] == "Bob"
    assert messages[0]["conversationId"] == conv.id


def test_recipient_outside_the_room_still_gets_notified(chat, socket_client):
    conv, alice, bob = chat
    a = socket_client(alice)
    a.get_received()

    send_message(conv.id, bob.id, "ping")

    events = a.get_received()
    assert [e["name"] for e in events] == ["new_notification"]
    assert events[0]["args"][0]["type"] == "new_message"


def test_publish_rejects_unknown_event(app):
    with pytest.raises(ValueError):
        publish("item_deleted", {}, "user:1")


def test_registry_lifecycle():
    registry = SessionRegistry()

    assert registry.connect("sid-1", 7) == "user:7"
    assert registry.join("sid-1", "chat:3")
    assert not registry.join("sid-unknown", "chat:3")
    assert registry.in_room("sid-1", "chat:3")
    assert registry.leave("sid-1", "chat:3")
    assert not registry.leave("sid-1", "chat:3")
    assert registry.user_for("sid-1") == 7
    assert registry.disconnect("sid-1") == {"user:7"}
    assert registry.user_for("sid-1") is None
    assert registry.disconnect("sid-1") == set()
