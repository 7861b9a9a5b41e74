"""Error taxonomy shared by the room store, game engine and coin ledger.

Every error carries a ``code`` so the socket gateway can report it as
``room-error {message, code}`` and HTTP endpoints can pick a status.
"""


class GameError(Exception):
    code = 'GameError'
    status_code = 400
    default_message = 'Request failed'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self):
        return {'message': self.message, 'code': self.code}


class ValidationError(GameError):
    code = 'ValidationError'
    default_message = 'Invalid input'


class RoomNotFound(GameError):
    code = 'RoomNotFound'
    status_code = 404
    default_message = 'Room not found'


class RoomFull(GameError):
    code = 'RoomFull'
    status_code = 409
    default_message = 'Room is full'


class InvalidState(GameError):
    code = 'InvalidState'
    status_code = 409
    default_message = 'Operation not allowed right now'


class PlayerNotFound(InvalidState):
    code = 'PlayerNotFound'
    default_message = 'Player is not in this room'


class NotHost(GameError):
    code = 'NotHost'
    status_code = 403
    default_message = 'Only the host can do that'


class NotEnoughPlayers(GameError):
    code = 'NotEnoughPlayers'
    default_message = 'Not enough players to start'


class InsufficientFunds(GameError):
    code = 'InsufficientFunds'
    status_code = 402
    default_message = 'Insufficient coins'


class PersistenceError(GameError):
    code = 'PersistenceError'
    status_code = 503
    default_message = 'Storage is unavailable'
