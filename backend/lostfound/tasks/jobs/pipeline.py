import logging

from lostfound.modules.notifications import service as notifications
from lostfound.modules.outbox import service as outbox
from lostfound.tasks.celery_app import celery_app, flask_app

logger = logging.getLogger(__name__)


@celery_app.task
def process_outbox_event(event_id: int) -> dict:
    with flask_app().app_context():
        outbox.process_event(event_id)
    return {"eventId": event_id}


@celery_app.task
def drain_outbox(limit: int = 100) -> dict:
    with flask_app().app_context():
        result = outbox.drain_pending(limit)
    if result["failed"]:
        logger.warning("outbox drain: %(done)d done, %(failed)d failed", result)
    return result


@celery_app.task
def clear_old_notifications() -> int:
    with flask_app().app_context():
        return notifications.clear_old_notifications()
