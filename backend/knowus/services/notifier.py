"""Room- and user-scoped emission on top of Flask-SocketIO.

Services never call ``flask_socketio.emit`` directly: they go through a
notifier so the same code runs inside event handlers, inside background
timer tasks, and in unit tests with a recording stand-in.
"""


def room_key(room_code: str) -> str:
    return f"room:{room_code}"


def user_key(app_user_id: str) -> str:
    return f"user:{app_user_id}"


class SocketNotifier:
    def __init__(self, socketio, namespace: str = '/'):
        self.socketio = socketio
        self.namespace = namespace

    def enter(self, sid: str, room_code: str) -> None:
        self.socketio.server.enter_room(sid, room_key(room_code), namespace=self.namespace)

    def leave(self, sid: str, room_code: str) -> None:
        self.socketio.server.leave_room(sid, room_key(room_code), namespace=self.namespace)

    def close(self, room_code: str) -> None:
        self.socketio.close_room(room_key(room_code), namespace=self.namespace)

    def enter_user(self, sid: str, app_user_id: str) -> None:
        self.socketio.server.enter_room(sid, user_key(app_user_id), namespace=self.namespace)

    def to_room(self, room_code: str, event: str, payload: dict) -> None:
        self.socketio.emit(event, payload, to=room_key(room_code), namespace=self.namespace)

    def to_sid(self, sid: str, event: str, payload: dict) -> None:
        self.socketio.emit(event, payload, to=sid, namespace=self.namespace)

    def to_user(self, app_user_id: str, event: str, payload: dict) -> None:
        self.socketio.emit(event, payload, to=user_key(app_user_id), namespace=self.namespace)
