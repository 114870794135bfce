from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_cors import CORS
from flask_socketio import SocketIO
import os

# Flask extensions singletons, bound to the app in create_app()

db = SQLAlchemy()
migrate = Migrate()
# Live channel server; the message queue (if any) is passed to init_app from config
socketio = SocketIO()

# Local dev clients: web dashboard (Vite) and the Expo dev server for the mobile app
_DEV_ORIGINS = (
	"http://localhost:5173",
	"http://127.0.0.1:5173",
	"http://localhost:8081",
	"http://localhost:19006",
	"http://127.0.0.1:19006",
)


def _allowed_origins() -> list[str]:
	"""CORS_ALLOW_ORIGINS (comma-separated); dev defaults outside production, never a wildcard."""
	raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
	origins = [o.strip() for o in raw.split(",") if o.strip()]
	if not origins and os.getenv("FLASK_ENV", "development").lower() != "production":
		origins = list(_DEV_ORIGINS)
	return origins


# Shared by the REST CORS policy and the Socket.IO handshake check
allowed_origins = _allowed_origins()
cors = CORS(resources={r"/api/*": {"origins": allowed_origins}, r"/health": {"origins": allowed_origins}})
