import threading
import time
from typing import Dict, Optional


class SocketContext:
    def __init__(self, sid: str):
        self.sid = sid
        self.connected_at = time.time()
        self.last_seen = self.connected_at
        self.room_code: Optional[str] = None
        self.app_user_id: Optional[str] = None


class ConnectionRegistry:
    """Tracks live sockets: when they were last heard from and which room they sit in."""

    def __init__(self):
        self._lock = threading.Lock()
        self._by_sid: Dict[str, SocketContext] = {}

    def connect(self, sid: str) -> SocketContext:
        with self._lock:
            ctx = SocketContext(sid)
            self._by_sid[sid] = ctx
            return ctx

    def touch(self, sid: str) -> SocketContext:
        with self._lock:
            ctx = self._by_sid.get(sid)
            if ctx is None:
                ctx = self._by_sid[sid] = SocketContext(sid)
            ctx.last_seen = time.time()
            return ctx

    def get(self, sid: str) -> Optional[SocketContext]:
        return self._by_sid.get(sid)

    def room_of(self, sid: str) -> Optional[str]:
        ctx = self._by_sid.get(sid)
        return ctx.room_code if ctx else None

    def set_room(self, sid: str, room_code: Optional[str]) -> None:
        self.touch(sid).room_code = room_code

    def clear_room(self, sid: str, room_code: str) -> None:
        """Forget the room only if the socket is still associated with it."""
        ctx = self._by_sid.get(sid)
        if ctx and ctx.room_code == room_code:
            ctx.room_code = None

    def set_user(self, sid: str, app_user_id: str) -> None:
        self.touch(sid).app_user_id = app_user_id

    def drop(self, sid: str) -> Optional[SocketContext]:
        with self._lock:
            return self._by_sid.pop(sid, None)

    def __len__(self):
        return len(self._by_sid)
