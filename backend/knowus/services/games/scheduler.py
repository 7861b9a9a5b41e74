import threading
from typing import Callable, Dict, Optional, Tuple


QUESTION_DEADLINE = 'question_deadline'
ROUND_RESULT = 'round_result'
ROOM_EXPIRY = 'room_expiry'


class RoomTimers:
    """One cancellable timer per (room_code, kind).

    Scheduling a kind again supersedes the previous timer; a superseded or
    cancelled timer wakes up, sees its token is stale, and does nothing.
    Callbacks run inside an application context.

    Disabled in TESTING unless ENABLE_SCHEDULER_IN_TESTS is set, so tests
    drive deadlines explicitly.
    """

    def __init__(self, app, socketio):
        self.app = app
        self.socketio = socketio
        self._lock = threading.Lock()
        self._tokens: Dict[Tuple[str, str], int] = {}
        self._counter = 0

    @property
    def enabled(self) -> bool:
        cfg = self.app.config
        return not (cfg.get('TESTING') and not cfg.get('ENABLE_SCHEDULER_IN_TESTS'))

    def schedule(self, room_code: str, kind: str, delay: float, callback: Callable, *args) -> Optional[int]:
        if not self.enabled:
            return None
        key = (room_code, kind)
        with self._lock:
            self._counter += 1
            token = self._counter
            self._tokens[key] = token
        self.app.logger.info(f"[timer-set] room={room_code} kind={kind} delay={delay}s token={token}")
        self.socketio.start_background_task(self._worker, key, token, delay, callback, args)
        return token

    def cancel(self, room_code: str, kind: Optional[str] = None) -> None:
        with self._lock:
            for key in list(self._tokens):
                if key[0] == room_code and (kind is None or key[1] == kind):
                    del self._tokens[key]

    def pending(self, room_code: str, kind: str) -> bool:
        return (room_code, kind) in self._tokens

    def _worker(self, key, token, delay, callback, args):
        self.socketio.sleep(delay)
        with self._lock:
            if self._tokens.get(key) != token:
                current = None
            else:
                current = self._tokens.pop(key)
        with self.app.app_context():
            if current is None:
                self.app.logger.info(f"[timer-abort] room={key[0]} kind={key[1]} token={token} superseded")
                return
            self.app.logger.info(f"[timer-fire] room={key[0]} kind={key[1]} token={token}")
            try:
                callback(*args)
            except Exception:
                self.app.logger.exception(f"[timer-error] room={key[0]} kind={key[1]}")
