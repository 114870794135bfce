"""Transactional outbox for side effects of item creation.

The creating request writes its row and the outbox events in one commit, then
calls ``dispatch``. Whatever happens after that commit (matching errors,
broadcast errors, a broker that is down) leaves the event pending or failed
for ``drain_pending`` to pick up; it never turns the request into a failure.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

from flask import current_app
from kombu.exceptions import KombuError
from sqlalchemy.exc import SQLAlchemyError

from ...errors import PersistenceError
from ...extensions import db
from ...models.outbox_event import OutboxEvent
from ...models.types import utcnow

logger = logging.getLogger(__name__)

Handler = Callable[[dict], Any]
HANDLERS: Dict[str, Handler] = {}


def handler(topic: str):
    def decorator(fn: Handler) -> Handler:
        HANDLERS[topic] = fn
        return fn
    return decorator


def enqueue(topic: str, payload: dict) -> OutboxEvent:
    """Add an event to the current transaction. The caller commits."""
    event = OutboxEvent(topic=topic, payload=dict(payload), status="pending", attempts=0)
    db.session.add(event)
    return event


def _record_failure(event_id: int, error: Exception) -> None:
    max_attempts = int(current_app.config.get("OUTBOX_MAX_ATTEMPTS", 5))
    try:
        event = db.session.get(OutboxEvent, event_id)
        if event is None:
            return
        event.attempts = (event.attempts or 0) + 1
        detail = f"{type(error).__name__}: {error}"
        cause = error.__cause__
        if cause is not None:
            detail += f" (caused by {type(cause).__name__}: {cause})"
        event.last_error = detail[:2000]
        if event.attempts >= max_attempts:
            event.status = "failed"
            logger.error("outbox event %s (%s) parked after %d attempts", event.id, event.topic, event.attempts)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.error("could not record failure of outbox event %s", event_id, exc_info=True)


def process_event(event_id: int) -> Any:
    """Run the handler for one pending event and mark it done.

    Returns the handler's result, or None when the event is missing or no longer
    pending. A failing handler is recorded on the event and re-raised.
    """
    event = db.session.get(OutboxEvent, event_id)
    if event is None or event.status != "pending":
        return None
    fn = HANDLERS.get(event.topic)
    if fn is None:
        err = LookupError(f"No handler for outbox topic {event.topic}")
        _record_failure(event_id, err)
        raise err
    try:
        result = fn(dict(event.payload or {}))
    except Exception as e:
        db.session.rollback()
        _record_failure(event_id, e)
        raise
    try:
        event.attempts = (event.attempts or 0) + 1
        event.status = "done"
        event.processed_at = utcnow()
        event.last_error = None
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError("Error completing outbox event") from e
    logger.info("outbox event %s (%s) done", event_id, event.topic)
    return result


def dispatch(events: List[OutboxEvent]) -> Dict[str, Any]:
    """Hand freshly committed events to the configured pipeline.

    Inline mode runs them now and returns ``{topic: result}`` for the ones that
    succeeded; celery mode queues them and returns an empty dict.
    """
    ids = [(e.id, e.topic) for e in events]
    mode = (current_app.config.get("PIPELINE_MODE") or "inline").lower()
    results: Dict[str, Any] = {}
    if mode == "celery":
        from ...tasks.jobs.pipeline import process_outbox_event

        for event_id, topic in ids:
            try:
                process_outbox_event.delay(event_id)
            except (KombuError, OSError):
                logger.error("could not queue outbox event %s (%s); left for drain", event_id, topic, exc_info=True)
        return results

    for event_id, topic in ids:
        try:
            results[topic] = process_event(event_id)
        except Exception:
            logger.error("outbox event %s (%s) failed; left for retry", event_id, topic, exc_info=True)
    return results


def drain_pending(limit: int = 100) -> dict:
    """Process pending events oldest first. Returns counts of done and failed runs."""
    ids = [
        r[0]
        for r in db.session.query(OutboxEvent.id)
        .filter(OutboxEvent.status == "pending")
        .order_by(OutboxEvent.id)
        .limit(max(1, int(limit)))
        .all()
    ]
    done = failed = 0
    for event_id in ids:
        try:
            process_event(event_id)
            done += 1
        except Exception:
            failed += 1
            logger.warning("outbox event %s failed during drain", event_id, exc_info=True)
    return {"done": done, "failed": failed}
