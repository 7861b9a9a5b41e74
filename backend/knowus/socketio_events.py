from functools import wraps

from flask import current_app, request
from flask_socketio import emit

from knowus import socketio
from knowus.errors import GameError, InvalidState, PlayerNotFound, RoomNotFound, ValidationError
from knowus.services import get_services
from knowus.services.room_store import normalize_room_code


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _as_dict(data) -> dict:
    return data if isinstance(data, dict) else {}


def room_operation(handler):
    """Run a client request and report taxonomy errors as ``room-error``.

    Room and game state are only mutated after validation passes, so a
    rejected request leaves them in their last valid state.
    """
    @wraps(handler)
    def wrapper(data=None):
        services = get_services()
        services.connections.touch(_get_sid())
        try:
            return handler(services, _as_dict(data))
        except GameError as exc:
            current_app.logger.info(
                f"[room-error] sid={_get_sid()} event={handler.__name__} code={exc.code} message={exc.message}"
            )
            emit('room-error', exc.to_dict())
    return wrapper


def _current_room(services, data) -> str:
    code = data.get('roomCode') or services.connections.room_of(_get_sid())
    if not code:
        raise InvalidState('You are not in a room')
    return code


def _leave_current_room(services, keep=None) -> None:
    sid = _get_sid()
    code = services.connections.room_of(sid)
    if not code or code == keep:
        return
    try:
        services.rooms.leave_room(code, sid)
    except (RoomNotFound, PlayerNotFound):
        current_app.logger.info(f"[room-leave-skip] sid={sid} room={code} already gone")
    services.connections.clear_room(sid, code)


def handle_connect(auth=None):
    sid = _get_sid()
    get_services().connections.connect(sid)
    current_app.logger.info(f"[connect] sid={sid}")
    emit('connected', {'sid': sid})


def handle_disconnect(reason=None):
    # Losing the socket is an implicit leave-room
    services = get_services()
    sid = _get_sid()
    ctx = services.connections.drop(sid)
    current_app.logger.info(f"[disconnect] sid={sid} reason={reason}")
    if not ctx or not ctx.room_code:
        return
    try:
        services.rooms.leave_room(ctx.room_code, sid)
    except (RoomNotFound, PlayerNotFound):
        current_app.logger.info(f"[disconnect] sid={sid} room={ctx.room_code} already gone")


def handle_register_user(data=None):
    # The mobile client emits the bare appUserId string
    if isinstance(data, str):
        data = {'appUserId': data}
    return _register_user_op(data)


@room_operation
def _register_user_op(services, data):
    app_user_id = data.get('appUserId')
    if not isinstance(app_user_id, str) or not app_user_id.strip():
        raise ValidationError('appUserId is required')
    sid = _get_sid()
    services.connections.set_user(sid, app_user_id)
    services.notifier.enter_user(sid, app_user_id)
    emit('user-registered', {'appUserId': app_user_id})


@room_operation
def handle_create_room(services, data):
    sid = _get_sid()
    # A rejected request must leave the current room untouched
    services.rooms.check_new_room(
        data.get('playerName'),
        data.get('avatar'),
        data.get('category'),
        total_questions=data.get('totalQuestions'),
        max_players=data.get('maxPlayers'),
    )
    _leave_current_room(services)
    room, player = services.rooms.create_room(
        sid,
        data.get('playerName'),
        data.get('avatar'),
        data.get('category'),
        total_questions=data.get('totalQuestions'),
        max_players=data.get('maxPlayers'),
    )
    services.connections.set_room(sid, room.room_code)
    emit('room-created', {
        'roomCode': room.room_code,
        'player': player.to_dict(),
        'category': room.settings['category'],
    })


@room_operation
def handle_join_room(services, data):
    sid = _get_sid()
    code = normalize_room_code(data.get('roomCode'))
    services.rooms.check_joinable(code, sid, data.get('playerName'), data.get('avatar'))
    _leave_current_room(services, keep=code)
    room, player = services.rooms.join_room(code, sid, data.get('playerName'), data.get('avatar'))
    services.connections.set_room(sid, room.room_code)
    emit('room-joined', {
        'roomCode': room.room_code,
        'player': player.to_dict(),
        'room': room.to_dict(),
    })


@room_operation
def handle_get_room(services, data):
    with services.rooms.locked(_current_room(services, data)) as room:
        payload = room.to_dict()
    emit('room-data', payload)


@room_operation
def handle_leave_room(services, data):
    sid = _get_sid()
    code = normalize_room_code(_current_room(services, data))
    services.rooms.leave_room(code, sid)
    services.connections.clear_room(sid, code)
    emit('room-left', {})


@room_operation
def handle_kick_player(services, data):
    room, target = services.rooms.kick_player(_current_room(services, data), _get_sid(), data.get('targetPlayerId'))
    services.connections.clear_room(target.id, room.room_code)


@room_operation
def handle_start_game(services, data):
    # The game-started broadcast doubles as the acknowledgement
    services.engine.start_game(_current_room(services, data), _get_sid())


@room_operation
def handle_submit_answer(services, data):
    code = services.connections.room_of(_get_sid()) or data.get('roomCode')
    if not code:
        raise InvalidState('You are not in a room')
    services.engine.submit_answer(code, _get_sid(), data.get('questionId'), data.get('answer'))


@room_operation
def handle_send_message(services, data):
    services.rooms.post_message(_current_room(services, data), _get_sid(), data.get('message'))


def handle_spend_coins(data=None):
    services = get_services()
    sid = _get_sid()
    services.connections.touch(sid)
    data = _as_dict(data)
    app_user_id = data.get('appUserId')
    if not isinstance(app_user_id, str) or not app_user_id.strip():
        emit('coins-spent', {'appUserId': app_user_id, 'newBalance': None, 'success': False,
                             'error': 'appUserId is required'})
        return
    services.connections.set_user(sid, app_user_id)
    services.notifier.enter_user(sid, app_user_id)
    try:
        services.ledger.spend_coins(app_user_id, data.get('amount'), data.get('transactionType') or 'game_start')
    except GameError as exc:
        current_app.logger.info(f"[coins-spend-rejected] user={app_user_id} code={exc.code} message={exc.message}")
        services.ledger.notify_failure(app_user_id, 'coins-spent', exc.message)


def handle_ping(data=None):
    get_services().connections.touch(_get_sid())
    emit('pong', data or {})


def handle_unexpected_error(exc):
    current_app.logger.exception(f"[critical-error] sid={_get_sid()} {exc!r}")
    emit('critical-error', {'message': 'Something went wrong, please try again'})


EVENT_HANDLERS = {
    'connect': handle_connect,
    'disconnect': handle_disconnect,
    'register-user': handle_register_user,
    'create-room': handle_create_room,
    'join-room': handle_join_room,
    'get-room': handle_get_room,
    'leave-room': handle_leave_room,
    'kick-player': handle_kick_player,
    'start-game': handle_start_game,
    'submit-answer': handle_submit_answer,
    'send-message': handle_send_message,
    'spend-coins': handle_spend_coins,
    'ping': handle_ping,
}


def register_socketio_handlers(namespace: str = '/') -> None:
    """Register Socket.IO event handlers on ``namespace``."""
    for event, handler in EVENT_HANDLERS.items():
        socketio.on_event(event, handler, namespace=namespace)
    socketio.on_error_default(handle_unexpected_error)
