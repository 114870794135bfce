from __future__ import annotations

from threading import Lock
from typing import Dict, Set

from flask import current_app


def user_room(user_id: int) -> str:
    return f"user:{int(user_id)}"


def chat_room(conversation_id: int) -> str:
    return f"chat:{int(conversation_id)}"


class SessionRegistry:
    """Which users hold a live connection and which rooms each connection joined.

    One instance per process, stored on the app (``app.extensions``). Only the
    connection lifecycle handlers mutate it: ``connect``, ``join``, ``leave``,
    ``disconnect``. Nothing here survives a restart. With more than one process
    the room broadcast itself goes through the Socket.IO message queue; this
    registry then only answers for connections held by the local process.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._user_sids: Dict[int, Set[str]] = {}
        self._sid_user: Dict[str, int] = {}
        self._sid_rooms: Dict[str, Set[str]] = {}

    def connect(self, sid: str, user_id: int) -> str:
        room = user_room(user_id)
        with self._lock:
            self._sid_user[sid] = int(user_id)
            self._user_sids.setdefault(int(user_id), set()).add(sid)
            self._sid_rooms[sid] = {room}
        return room

    def join(self, sid: str, room: str) -> bool:
        with self._lock:
            rooms = self._sid_rooms.get(sid)
            if rooms is None:
                return False
            rooms.add(room)
            return True

    def leave(self, sid: str, room: str) -> bool:
        with self._lock:
            rooms = self._sid_rooms.get(sid)
            if not rooms or room not in rooms:
                return False
            rooms.discard(room)
            return True

    def disconnect(self, sid: str) -> Set[str]:
        with self._lock:
            rooms = self._sid_rooms.pop(sid, set())
            uid = self._sid_user.pop(sid, None)
            if uid is not None:
                sids = self._user_sids.get(uid)
                if sids is not None:
                    sids.discard(sid)
                    if not sids:
                        self._user_sids.pop(uid, None)
        return rooms

    def is_online(self, user_id: int) -> bool:
        with self._lock:
            return bool(self._user_sids.get(int(user_id)))

    def user_for(self, sid: str) -> int | None:
        with self._lock:
            return self._sid_user.get(sid)

    def rooms_for(self, sid: str) -> Set[str]:
        with self._lock:
            return set(self._sid_rooms.get(sid, ()))

    def in_room(self, sid: str, room: str) -> bool:
        with self._lock:
            return room in self._sid_rooms.get(sid, ())

    def connection_count(self) -> int:
        with self._lock:
            return len(self._sid_user)


def get_registry() -> SessionRegistry:
    return current_app.extensions["session_registry"]
