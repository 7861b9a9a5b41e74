import os
import sys
import pytest

# Ensure the backend root (containing the `knowus` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from config import Config
from knowus import create_app, db, socketio
from knowus.services.games.engine import GameEngine
from knowus.services.room_store import RoomStore
from knowus.services.question_bank import load_question_bank


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DEFAULT_TOTAL_QUESTIONS = 3
    COIN_WEBHOOK_SECRET = 'test-webhook-secret'
    JOIN_URL_BASE = 'https://knowusbetter.test'


class RecordingNotifier:
    """Stands in for the Socket.IO notifier and keeps every emission."""

    def __init__(self):
        self.events = []
        self.members = {}
        self.users = {}

    def enter(self, sid, room_code):
        self.members.setdefault(room_code, set()).add(sid)

    def leave(self, sid, room_code):
        self.members.get(room_code, set()).discard(sid)

    def close(self, room_code):
        self.members.pop(room_code, None)

    def enter_user(self, sid, app_user_id):
        self.users.setdefault(app_user_id, set()).add(sid)

    def to_room(self, room_code, event, payload):
        self.events.append(('room', room_code, event, payload))

    def to_sid(self, sid, event, payload):
        self.events.append(('sid', sid, event, payload))

    def to_user(self, app_user_id, event, payload):
        self.events.append(('user', app_user_id, event, payload))

    def names(self):
        return [e[2] for e in self.events]

    def payloads(self, event):
        return [e[3] for e in self.events if e[2] == event]

    def last(self, event):
        found = self.payloads(event)
        return found[-1] if found else None

    def clear(self):
        self.events.clear()


def build_engine(flask_app, notifier, **overrides):
    """Room store + engine wired to a recording notifier and the app's question bank."""
    services = flask_app.extensions['knowus']
    config = dict(flask_app.config)
    config.update(overrides)
    store = RoomStore(notifier, services.categories, config)
    engine = GameEngine(store, services.questions, notifier, services.timers, config)
    return store, engine


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        db.create_all()
        load_question_bank()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def services(flask_app):
    return flask_app.extensions['knowus']


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def game(flask_app, notifier):
    store, engine = build_engine(flask_app, notifier)
    return store, engine


@pytest.fixture()
def sio_factory(flask_app):
    created = []

    def _make():
        test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        test_client.get_received()  # flush the connect greeting
        created.append(test_client)
        return test_client

    yield _make
    for test_client in created:
        try:
            if test_client.is_connected():
                test_client.disconnect()
        except RuntimeError:
            pass
