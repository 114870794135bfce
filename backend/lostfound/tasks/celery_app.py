import os

from celery import Celery
from celery.schedules import crontab
from flask import Flask

_flask_app: Flask | None = None


def make_celery() -> Celery:
    broker = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    backend = os.getenv("CELERY_RESULT_BACKEND", broker)
    app = Celery("lostfound", broker=broker, backend=backend, include=[
        "lostfound.tasks.jobs.pipeline",
    ])
    app.conf.update(
        task_track_started=True,
        beat_schedule={
            "drain-outbox": {
                "task": "lostfound.tasks.jobs.pipeline.drain_outbox",
                "schedule": 60.0,
            },
            "clear-old-notifications": {
                "task": "lostfound.tasks.jobs.pipeline.clear_old_notifications",
                "schedule": crontab(hour=3, minute=0),
            },
        },
    )
    return app


celery_app = make_celery()


def init_celery(app: Flask) -> Celery:
    """Bind the Flask app whose context tasks run in, and take broker settings from its config."""
    global _flask_app
    _flask_app = app
    celery_app.conf.update(
        broker_url=app.config.get("CELERY_BROKER_URL"),
        result_backend=app.config.get("CELERY_RESULT_BACKEND"),
        task_always_eager=bool(app.config.get("CELERY_TASK_ALWAYS_EAGER")),
    )
    return celery_app


def flask_app() -> Flask:
    global _flask_app
    if _flask_app is None:
        # Worker process: build the app from the environment
        from .. import create_app

        create_app()
    return _flask_app  # type: ignore[return-value]
