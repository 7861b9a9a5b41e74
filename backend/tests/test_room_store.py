import threading

import pytest

from conftest import RecordingNotifier, build_engine
from knowus.errors import (
    InvalidState,
    NotHost,
    PlayerNotFound,
    RoomFull,
    RoomNotFound,
    ValidationError,
)
from knowus.rooms import WAITING
from knowus.services.room_store import ROOM_CODE_ALPHABET


def _create(store, host='host-sid', **kwargs):
    params = dict(player_name='Alice', avatar='cat_01', category='just_friends')
    params.update(kwargs)
    return store.create_room(host, **params)


def test_create_room_returns_waiting_room_with_host(game, notifier):
    store, _ = game
    room, player = _create(store)

    assert len(room.room_code) == 6
    assert all(ch in ROOM_CODE_ALPHABET for ch in room.room_code)
    assert room.status == WAITING
    assert player.is_host and room.host is player
    assert room.settings['category'] == 'just_friends'
    assert room.settings['maxPlayers'] == 2
    assert room.settings['totalQuestions'] == 3
    assert room.join_url == f'https://knowusbetter.test/join/{room.room_code}'
    assert 'host-sid' in notifier.members[room.room_code]


@pytest.mark.parametrize('overrides', [
    {'player_name': '   '},
    {'player_name': 'x' * 21},
    {'avatar': 'Not An Avatar!'},
    {'category': 'no_such_category'},
    {'total_questions': 0},
    {'max_players': 1},
    {'max_players': 'four'},
])
def test_create_room_rejects_invalid_input_without_creating(game, overrides):
    store, _ = game
    with pytest.raises(ValidationError):
        _create(store, **overrides)
    assert len(store) == 0


def test_concurrent_creates_issue_unique_codes(flask_app):
    store, _ = build_engine(flask_app, RecordingNotifier(), ROOM_CODE_LENGTH=2)
    codes = []
    errors = []

    def worker(n):
        with flask_app.app_context():
            for i in range(4):
                try:
                    room, _ = _create(store, host=f'sid-{n}-{i}')
                    codes.append(room.room_code)
                except Exception as exc:  # surfaced by the assertion below
                    errors.append(exc)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(25)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(codes) == 100
    assert len(set(codes)) == 100
    assert len(store) == 100


def test_join_room_is_case_insensitive_and_broadcasts(game, notifier):
    store, _ = game
    room, _ = _create(store)

    joined, player = store.join_room(room.room_code.lower(), 'guest-sid', 'Bob', 'dog_02')

    assert joined is room
    assert not player.is_host
    assert [p.id for p in room.players] == ['host-sid', 'guest-sid']
    assert 'guest-sid' in notifier.members[room.room_code]
    payload = notifier.last('player-joined')
    assert payload['player']['id'] == 'guest-sid'
    assert len(payload['room']['players']) == 2


def test_join_full_room_is_rejected_without_change(game):
    store, _ = game
    room, _ = _create(store)
    store.join_room(room.room_code, 'guest-sid', 'Bob', 'dog_02')

    with pytest.raises(RoomFull):
        store.join_room(room.room_code, 'third-sid', 'Carol', 'fox_03')
    assert len(room.players) == 2


def test_join_unknown_room(game):
    store, _ = game
    with pytest.raises(RoomNotFound):
        store.join_room('ZZZZZZ', 'guest-sid', 'Bob', 'dog_02')


def test_join_twice_is_rejected(game):
    store, _ = game
    room, _ = _create(store, max_players=3)
    store.join_room(room.room_code, 'guest-sid', 'Bob', 'dog_02')
    with pytest.raises(InvalidState):
        store.join_room(room.room_code, 'guest-sid', 'Bob', 'dog_02')


def test_join_started_game_is_rejected(game):
    store, engine = game
    room, _ = _create(store, max_players=3)
    store.join_room(room.room_code, 'guest-sid', 'Bob', 'dog_02')
    engine.start_game(room.room_code, 'host-sid')

    with pytest.raises(InvalidState):
        store.join_room(room.room_code, 'late-sid', 'Carol', 'fox_03')


def test_host_leaving_promotes_oldest_remaining(game, notifier):
    store, _ = game
    room, _ = _create(store, max_players=3)
    store.join_room(room.room_code, 'guest-1', 'Bob', 'dog_02')
    store.join_room(room.room_code, 'guest-2', 'Carol', 'fox_03')

    remaining = store.leave_room(room.room_code, 'host-sid')

    assert remaining is room
    assert [p.id for p in room.players if p.is_host] == ['guest-1']
    left = notifier.last('player-left')
    assert left['playerId'] == 'host-sid'
    assert left['room']['players'][0]['isHost'] is True
    assert 'host-sid' not in notifier.members[room.room_code]


def test_last_player_leaving_deletes_room(game, notifier):
    store, _ = game
    room, _ = _create(store)

    assert store.leave_room(room.room_code, 'host-sid') is None
    assert notifier.last('player-left') == {'playerId': 'host-sid', 'room': None}
    with pytest.raises(RoomNotFound):
        store.get_room(room.room_code)
    assert room.closed
    assert room.room_code not in notifier.members


def test_leave_when_not_a_member(game):
    store, _ = game
    room, _ = _create(store)
    with pytest.raises(PlayerNotFound):
        store.leave_room(room.room_code, 'stranger')


def test_kick_player_by_host(game, notifier):
    store, _ = game
    room, _ = _create(store)
    store.join_room(room.room_code, 'guest-sid', 'Bob', 'dog_02')

    store.kick_player(room.room_code, 'host-sid', 'guest-sid')

    assert [p.id for p in room.players] == ['host-sid']
    direct = [e for e in notifier.events if e[0] == 'sid' and e[2] == 'kicked-from-room']
    assert direct and direct[0][1] == 'guest-sid'
    assert notifier.last('player-kicked')['playerId'] == 'guest-sid'
    assert notifier.last('player-left')['playerId'] == 'guest-sid'


def test_kick_player_guards(game):
    store, _ = game
    room, _ = _create(store)
    store.join_room(room.room_code, 'guest-sid', 'Bob', 'dog_02')

    with pytest.raises(NotHost):
        store.kick_player(room.room_code, 'guest-sid', 'host-sid')
    with pytest.raises(ValidationError):
        store.kick_player(room.room_code, 'host-sid', 'host-sid')
    with pytest.raises(PlayerNotFound):
        store.kick_player(room.room_code, 'host-sid', 'nobody')
    assert len(room.players) == 2


def test_post_message(game, notifier):
    store, _ = game
    room, _ = _create(store)

    payload = store.post_message(room.room_code, 'host-sid', '  hello there  ')

    assert payload['message'] == 'hello there'
    assert payload['playerName'] == 'Alice'
    assert notifier.last('chat-message') == payload


def test_post_message_validation(game):
    store, _ = game
    room, _ = _create(store)
    with pytest.raises(ValidationError):
        store.post_message(room.room_code, 'host-sid', '   ')
    with pytest.raises(ValidationError):
        store.post_message(room.room_code, 'host-sid', 'x' * 501)
    with pytest.raises(PlayerNotFound):
        store.post_message(room.room_code, 'stranger', 'hi')


def test_discard_room(game):
    store, _ = game
    room, _ = _create(store)
    assert store.discard_room(room.room_code) is True
    assert store.discard_room(room.room_code) is False
    assert len(store) == 0


def test_check_joinable_runs_join_checks_without_joining(game, notifier):
    store, _ = game
    room, _ = _create(store)
    notifier.clear()

    assert store.check_joinable(room.room_code, 'guest-sid', 'Bob', 'dog_02') is room
    assert len(room.players) == 1
    assert notifier.events == []

    store.join_room(room.room_code, 'guest-sid', 'Bob', 'dog_02')
    with pytest.raises(RoomFull):
        store.check_joinable(room.room_code, 'third-sid', 'Carol', 'fox_03')
    with pytest.raises(RoomNotFound):
        store.check_joinable('ZZZZZZ', 'third-sid', 'Carol', 'fox_03')
    with pytest.raises(ValidationError):
        store.check_joinable(room.room_code, 'third-sid', '', 'fox_03')


def test_check_new_room_creates_nothing(game):
    store, _ = game
    name, avatar, settings = store.check_new_room(' Alice ', 'cat_01', 'couples', total_questions=4)

    assert (name, avatar) == ('Alice', 'cat_01')
    assert settings['category'] == 'couples'
    assert settings['totalQuestions'] == 4
    assert len(store) == 0
