"""Expo push gateway client and device-token store.

``send_batch`` hands messages to the gateway in chunks; a chunk that fails is
logged and skipped, the others still go out. Nothing is retried or queued:
the guarantee is "handed off", not "delivered".
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence

import requests
from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ...errors import PersistenceError, ValidationError
from ...extensions import db
from ...models.device_token import DeviceToken
from ...models.types import utcnow

logger = logging.getLogger(__name__)

DEFAULT_PUSH_URL = "https://exp.host/--/api/v2/push/send"
MAX_CHUNK_SIZE = 100  # gateway-imposed


@dataclass
class PushMessage:
    title: str
    body: str
    data: dict = field(default_factory=dict)


@dataclass
class PushResult:
    sent: int = 0
    errors: List[dict] = field(default_factory=list)
    invalid_tokens: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


def _chunks(items: Sequence, size: int) -> Iterable[Sequence]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


def _settings() -> tuple[str, int, int, str | None]:
    cfg = current_app.config
    size = int(cfg.get("PUSH_CHUNK_SIZE") or MAX_CHUNK_SIZE)
    return (
        cfg.get("EXPO_PUSH_URL") or DEFAULT_PUSH_URL,
        max(1, min(MAX_CHUNK_SIZE, size)),
        int(cfg.get("PUSH_TIMEOUT") or 15),
        cfg.get("EXPO_ACCESS_TOKEN"),
    )


def _invalid_from_tickets(chunk: Sequence[dict], body) -> List[str]:
    # Tickets come back in request order: {"data": [{"status": "error", "details": {"error": "DeviceNotRegistered"}}, ...]}
    tickets = body.get("data") if isinstance(body, dict) else None
    if not isinstance(tickets, list):
        return []
    invalid = []
    for msg, ticket in zip(chunk, tickets):
        if not isinstance(ticket, dict) or ticket.get("status") != "error":
            continue
        details = ticket.get("details") or {}
        if details.get("error") == "DeviceNotRegistered":
            invalid.append(msg["to"])
    return invalid


def send_batch(tokens: Sequence[str], message: PushMessage) -> PushResult:
    """Send one message to many device tokens, chunked per gateway limit."""
    result = PushResult()
    if not tokens:
        return result
    url, chunk_size, timeout, access_token = _settings()
    headers = {
        "Accept": "application/json",
        "Accept-Encoding": "gzip, deflate",
        "Content-Type": "application/json",
    }
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"

    messages = [
        {"to": t, "sound": "default", "title": message.title, "body": message.body, "data": message.data or {}}
        for t in tokens
    ]
    for index, chunk in enumerate(_chunks(messages, chunk_size)):
        try:
            resp = requests.post(url, json=list(chunk), headers=headers, timeout=timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error("push chunk %d (%d tokens) failed: %s", index, len(chunk), e)
            result.errors.append({"chunk": index, "tokens": len(chunk), "error": str(e)})
            continue
        result.sent += len(chunk)
        try:
            body = resp.json()
        except ValueError:
            logger.warning("push chunk %d: could not parse gateway response: %s", index, resp.text[:200])
            continue
        logger.debug("push chunk %d response: %s", index, body)
        result.invalid_tokens.extend(_invalid_from_tickets(chunk, body))
    return result


def register_device_token(user_id: int, token: str, platform: str | None = None) -> DeviceToken:
    """Upsert keyed on the token: the last user to register a token owns it."""
    token = (token or "").strip()
    if not token:
        raise ValidationError("Token is required")
    for attempt in range(2):
        try:
            row = DeviceToken.query.filter_by(token=token).first()
            if row is None:
                row = DeviceToken(user_id=user_id, token=token, platform=platform)
                db.session.add(row)
            else:
                row.user_id = user_id
                row.platform = platform
                row.created_at = utcnow()
            db.session.commit()
            return row
        except IntegrityError as e:
            # Concurrent insert of the same token; the second pass updates it
            db.session.rollback()
            if attempt:
                raise PersistenceError("Error registering device token") from e
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError("Error registering device token") from e
    raise PersistenceError("Error registering device token")


def remove_device_token(token: str, user_id: int | None = None) -> int:
    try:
        q = DeviceToken.query.filter(DeviceToken.token == token)
        if user_id is not None:
            q = q.filter(DeviceToken.user_id == user_id)
        removed = q.delete(synchronize_session=False)
        db.session.commit()
        return removed
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Error removing device token") from e


def remove_device_tokens(tokens: Sequence[str]) -> int:
    if not tokens:
        return 0
    try:
        removed = DeviceToken.query.filter(DeviceToken.token.in_(list(tokens))).delete(synchronize_session=False)
        db.session.commit()
        return removed
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Error removing device tokens") from e


def tokens_for_user(user_id: int) -> List[str]:
    try:
        rows = db.session.query(DeviceToken.token).filter(DeviceToken.user_id == user_id).order_by(DeviceToken.id).all()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Error getting device tokens") from e
    return [r[0] for r in rows]


def send_push_to_user(user_id: int, title: str, body: str, data: dict | None = None) -> PushResult:
    tokens = tokens_for_user(user_id)
    result = send_batch(tokens, PushMessage(title=title, body=body, data=data or {}))
    if result.invalid_tokens:
        remove_device_tokens(result.invalid_tokens)
    return result
