from flask import Flask
from .config import get_config
from .extensions import db, migrate, cors, socketio, allowed_origins
from .logging_config import setup_logging
from sqlalchemy import text
from dotenv import load_dotenv
from werkzeug.middleware.proxy_fix import ProxyFix


def create_app(config_name: str | None = None) -> Flask:
    app = Flask(__name__)

    # Load config
    # Ensure .env is loaded before reading env vars
    load_dotenv()
    app.config.from_object(get_config(config_name))
    setup_logging(app.config.get("LOG_LEVEL", "INFO"), json_fmt=bool(app.config.get("LOG_JSON")))

    # Honor proxy headers from Nginx for correct url_for(_external=True) scheme/host
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=1)  # type: ignore[assignment]

    # Init extensions
    cors.init_app(app)
    db.init_app(app)
    migrate.init_app(app, db)

    # Live channel: one session registry per process, owned by the app
    from .modules.realtime.events import register_socket_handlers
    from .modules.realtime.registry import SessionRegistry
    app.extensions["session_registry"] = SessionRegistry()
    socketio.init_app(
        app,
        cors_allowed_origins=allowed_origins or None,
        message_queue=app.config.get("SOCKETIO_MESSAGE_QUEUE"),
    )
    register_socket_handlers(socketio)

    from .tasks.celery_app import init_celery
    init_celery(app)

    from .errors import register_error_handlers
    register_error_handlers(app)

    # Register blueprints (v1 API)
    from .apis.v1 import register_api
    register_api(app)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok", "connections": app.extensions["session_registry"].connection_count()}

    @app.get("/db-check")
    def db_check() -> dict:
        try:
            db.session.execute(text("SELECT 1"))
            return {"db": "ok"}
        except Exception as e:
            return {"db": "error", "message": str(e)}, 500

    return app
