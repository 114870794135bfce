import os

from lostfound import create_app
from lostfound.extensions import socketio

app = create_app()

if __name__ == "__main__":
    # Local runner; production serves `wsgi:app` behind gunicorn + eventlet/gevent
    socketio.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "5000")), allow_unsafe_werkzeug=True)
