"""Per-application service container.

Each Flask app built by ``create_app`` gets its own room store, engine,
ledger and caches under ``app.extensions['knowus']``; nothing stateful
lives at module level.
"""
from flask import current_app

from .coin_ledger import CoinLedger
from .connections import ConnectionRegistry
from .games.engine import GameEngine
from .games.scheduler import RoomTimers
from .notifier import SocketNotifier
from .question_bank import CategoryCache, QuestionProvider
from .room_store import RoomStore


class GameServices:
    def __init__(self, app, socketio):
        config = app.config
        self.notifier = SocketNotifier(socketio, namespace=config.get('SOCKETIO_NAMESPACE', '/'))
        self.timers = RoomTimers(app, socketio)
        self.categories = CategoryCache(ttl=float(config.get('CATEGORY_CACHE_TTL_SEC', 3600)))
        self.questions = QuestionProvider(self.categories)
        self.connections = ConnectionRegistry()
        self.rooms = RoomStore(self.notifier, self.categories, config)
        self.engine = GameEngine(self.rooms, self.questions, self.notifier, self.timers, config)
        self.ledger = CoinLedger(self.notifier, config)


def get_services() -> GameServices:
    return current_app.extensions['knowus']
