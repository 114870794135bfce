import itertools
from datetime import date

import pytest
import requests

from lostfound import create_app
from lostfound.extensions import db, socketio
from lostfound.models import Item, User
from lostfound.security import issue_token

_seq = itertools.count(1)

D = date(2024, 5, 10)


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(name=None, verified=True, admin=False, **kw):
        n = next(_seq)
        user = User(
            email=kw.pop("email", f"user{n}@pdn.ac.lk"),
            name=name or f"User {n}",
            is_verified=verified,
            is_admin=admin,
            **kw,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_item(app):
    def _make(owner, **kw):
        fields = {
            "type": "lost",
            "item_name": "Black backpack",
            "category": "Bag",
            "color": "Black",
            "location": "Main Library",
            "occurred_on": D,
            "status": "active",
        }
        fields.update(kw)
        item = Item(user_id=owner.id, **fields)
        db.session.add(item)
        db.session.commit()
        return item

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {issue_token(user.id)}"}

    return _headers


@pytest.fixture
def socket_client(app):
    clients = []

    def _connect(user=None, token=None):
        auth = None
        if user is not None:
            auth = {"token": issue_token(user.id)}
        elif token is not None:
            auth = {"token": token}
        c = socketio.test_client(app, auth=auth)
        clients.append(c)
        return c

    yield _connect
    for c in clients:
        if c.is_connected():
            c.disconnect()


def _received(client, name):
    return [evt["args"][0] for evt in client.get_received() if evt["name"] == name]


@pytest.fixture
def received():
    """Payloads of every ``name`` event a socket test client got since the last call."""
    return _received


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body if body is not None else {"data": []}
        self.text = str(self._body)

    def json(self):
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error", response=self)


class FakeGateway:
    """Stands in for the Expo push endpoint; records every chunk posted to it."""

    def __init__(self):
        self.calls = []
        self.fail_chunks = set()
        self.status_for_chunk = {}
        self.unregistered = set()

    def post(self, url, json=None, headers=None, timeout=None):
        index = len(self.calls)
        self.calls.append({"url": url, "messages": json, "headers": headers, "timeout": timeout})
        if index in self.fail_chunks:
            raise requests.ConnectionError("gateway unreachable")
        tickets = []
        for msg in json:
            if msg["to"] in self.unregistered:
                tickets.append({"status": "error", "message": "not registered", "details": {"error": "DeviceNotRegistered"}})
            else:
                tickets.append({"status": "ok", "id": f"ticket-{msg['to']}"})
        return FakeResponse(self.status_for_chunk.get(index, 200), {"data": tickets})

    @property
    def tokens_sent(self):
        return [m["to"] for call in self.calls for m in call["messages"]]


@pytest.fixture(autouse=True)
def gateway(monkeypatch):
    gw = FakeGateway()
    monkeypatch.setattr(requests, "post", gw.post)
    return gw
