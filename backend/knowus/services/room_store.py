import random
import re
import string
import threading
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional, Tuple

from flask import current_app

from knowus.errors import (
    InvalidState,
    NotHost,
    PlayerNotFound,
    RoomFull,
    RoomNotFound,
    ValidationError,
)
from knowus.rooms import WAITING, Player, Room, now_ms


ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
AVATAR_PATTERN = re.compile(r'^[a-z0-9_]{1,32}$')
MAX_CODE_ATTEMPTS = 100

RemovalListener = Callable[[Room, Player, str], None]


def normalize_room_code(room_code) -> str:
    if not isinstance(room_code, str) or not room_code.strip():
        raise ValidationError('roomCode is required')
    return room_code.strip().upper()


class RoomStore:
    """Authoritative registry of live rooms keyed by room code.

    Room codes are issued under ``_lock`` (check-and-insert in one step);
    everything else about a room is serialized by that room's own lock.
    """

    def __init__(self, notifier, categories, config):
        self.notifier = notifier
        self.categories = categories
        self.config = config
        self._lock = threading.Lock()
        self._rooms: Dict[str, Room] = {}
        self._removal_listeners: List[RemovalListener] = []

    def add_removal_listener(self, listener: RemovalListener) -> None:
        self._removal_listeners.append(listener)

    def __len__(self):
        return len(self._rooms)

    def room_codes(self) -> List[str]:
        return list(self._rooms)

    # ---- validation ----

    def _validate_name(self, name) -> str:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError('playerName is required')
        name = name.strip()
        max_len = int(self.config.get('PLAYER_NAME_MAX_LEN', 20))
        if len(name) > max_len:
            raise ValidationError(f'playerName must be at most {max_len} characters')
        if not name.isprintable():
            raise ValidationError('playerName contains invalid characters')
        return name

    def _validate_avatar(self, avatar) -> str:
        if not isinstance(avatar, str) or not AVATAR_PATTERN.match(avatar):
            raise ValidationError('avatar is invalid')
        return avatar

    def _validate_category(self, category) -> str:
        if not isinstance(category, str) or not category.strip():
            raise ValidationError('category is required')
        category = category.strip()
        if not self.categories.exists(category):
            raise ValidationError(f'Unknown category: {category}')
        return category

    def _bounded_int(self, value, default: int, low: int, high: int, field: str) -> int:
        if value is None:
            return default
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f'{field} must be an integer')
        if not low <= value <= high:
            raise ValidationError(f'{field} must be between {low} and {high}')
        return value

    def _build_settings(self, category: str, total_questions, max_players) -> dict:
        cfg = self.config
        min_players = int(cfg.get('MIN_PLAYERS', 2))
        return {
            'maxPlayers': self._bounded_int(
                max_players, int(cfg.get('DEFAULT_MAX_PLAYERS', 2)),
                min_players, int(cfg.get('MAX_PLAYERS_LIMIT', 8)), 'maxPlayers'),
            'totalQuestions': self._bounded_int(
                total_questions, int(cfg.get('DEFAULT_TOTAL_QUESTIONS', 10)),
                1, int(cfg.get('MAX_TOTAL_QUESTIONS', 50)), 'totalQuestions'),
            'category': category,
            'questionDuration': float(cfg.get('QUESTION_DURATION_SEC', 30)),
        }

    # ---- lookup ----

    def get_room(self, room_code) -> Room:
        code = normalize_room_code(room_code)
        room = self._rooms.get(code)
        if room is None:
            raise RoomNotFound(f'Room {code} not found')
        return room

    @contextmanager
    def locked(self, room_code):
        """Yield the room while holding its lock; fails if it was deleted meanwhile."""
        room = self.get_room(room_code)
        with room.lock:
            if room.closed:
                raise RoomNotFound(f'Room {room.room_code} not found')
            yield room

    # ---- lifecycle ----

    def _allocate_code(self) -> str:
        length = int(self.config.get('ROOM_CODE_LENGTH', 6))
        for _ in range(MAX_CODE_ATTEMPTS):
            code = ''.join(random.choices(ROOM_CODE_ALPHABET, k=length))
            if code not in self._rooms:
                return code
        raise InvalidState('Could not allocate a room code, try again')

    def check_new_room(self, player_name, avatar, category,
                       total_questions=None, max_players=None) -> Tuple[str, str, dict]:
        """Validate a create request without touching any room; returns (name, avatar, settings)."""
        name = self._validate_name(player_name)
        avatar = self._validate_avatar(avatar)
        category = self._validate_category(category)
        return name, avatar, self._build_settings(category, total_questions, max_players)

    def create_room(self, player_id: str, player_name, avatar, category,
                    total_questions=None, max_players=None) -> Tuple[Room, Player]:
        name, avatar, settings = self.check_new_room(player_name, avatar, category, total_questions, max_players)
        category = settings['category']
        player = Player(player_id, name, avatar, is_host=True)

        with self._lock:
            code = self._allocate_code()
            room = Room(code, settings)
            room.players.append(player)
            base = self.config.get('JOIN_URL_BASE')
            if base:
                room.join_url = f"{base.rstrip('/')}/join/{code}"
            self.notifier.enter(player_id, code)
            self._rooms[code] = room

        current_app.logger.info(f"[room-create] room={code} host={player_id} category={category}")
        return room, player

    def check_joinable(self, room_code, player_id: str, player_name, avatar) -> Room:
        """Run every join check without joining."""
        self._validate_name(player_name)
        self._validate_avatar(avatar)
        with self.locked(room_code) as room:
            self._ensure_joinable(room, player_id)
            return room

    def join_room(self, room_code, player_id: str, player_name, avatar) -> Tuple[Room, Player]:
        name = self._validate_name(player_name)
        avatar = self._validate_avatar(avatar)
        with self.locked(room_code) as room:
            self._ensure_joinable(room, player_id)
            player = Player(player_id, name, avatar)
            room.players.append(player)
            self.notifier.enter(player_id, room.room_code)
            self.notifier.to_room(room.room_code, 'player-joined', {
                'player': player.to_dict(),
                'room': room.to_dict(),
            })
            current_app.logger.info(f"[room-join] room={room.room_code} player={player_id} size={len(room.players)}")
            return room, player

    def leave_room(self, room_code, player_id: str) -> Optional[Room]:
        """Remove a player; returns the room, or None when it was deleted."""
        with self.locked(room_code) as room:
            player = room.get_player(player_id)
            if player is None:
                raise PlayerNotFound()
            self._detach(room, player)
            self._announce_left(room, player)
            self._finish_removal(room, player, 'left')
            return None if room.closed else room

    def kick_player(self, room_code, host_id: str, target_id: str) -> Tuple[Room, Player]:
        with self.locked(room_code) as room:
            host = room.get_player(host_id)
            if host is None or not host.is_host:
                raise NotHost('Only the host can kick players')
            if target_id == host_id:
                raise ValidationError('You cannot kick yourself')
            target = room.get_player(target_id)
            if target is None:
                raise PlayerNotFound()
            self._detach(room, target)
            self.notifier.to_sid(target.id, 'kicked-from-room', {
                'message': 'You were removed from the room by the host',
                'roomCode': room.room_code,
            })
            self.notifier.to_room(room.room_code, 'player-kicked', {
                'playerId': target.id,
                'playerName': target.name,
                'room': room.to_dict(),
            })
            self._announce_left(room, target)
            self._finish_removal(room, target, 'kicked')
            current_app.logger.info(f"[room-kick] room={room.room_code} host={host_id} target={target_id}")
            return room, target

    def post_message(self, room_code, player_id: str, message) -> dict:
        if not isinstance(message, str) or not message.strip():
            raise ValidationError('message is required')
        message = message.strip()
        max_len = int(self.config.get('CHAT_MESSAGE_MAX_LEN', 500))
        if len(message) > max_len:
            raise ValidationError(f'message must be at most {max_len} characters')
        with self.locked(room_code) as room:
            player = room.get_player(player_id)
            if player is None:
                raise PlayerNotFound()
            payload = {
                'playerId': player.id,
                'playerName': player.name,
                'avatar': player.avatar,
                'message': message,
                'timestamp': now_ms(),
            }
            self.notifier.to_room(room.room_code, 'chat-message', payload)
            return payload

    def discard_room(self, room_code) -> bool:
        """Drop a room regardless of who is still in it (finished-room expiry)."""
        try:
            with self.locked(room_code) as room:
                self._delete(room)
                return True
        except RoomNotFound:
            return False

    # ---- internals, called with room.lock held ----

    def _ensure_joinable(self, room: Room, player_id: str) -> None:
        if room.get_player(player_id):
            raise InvalidState('You are already in this room')
        if room.is_full():
            raise RoomFull(f'Room {room.room_code} is full')
        if room.status != WAITING:
            raise InvalidState('Game has already started')

    def _detach(self, room: Room, player: Player) -> None:
        room.players.remove(player)
        if player.is_host and room.players:
            room.players[0].is_host = True
        player.is_host = False

    def _announce_left(self, room: Room, player: Player) -> None:
        self.notifier.to_room(room.room_code, 'player-left', {
            'playerId': player.id,
            'room': room.to_dict() if room.players else None,
        })

    def _finish_removal(self, room: Room, player: Player, reason: str) -> None:
        self.notifier.leave(player.id, room.room_code)
        current_app.logger.info(f"[room-leave] room={room.room_code} player={player.id} reason={reason} remaining={len(room.players)}")
        for listener in self._removal_listeners:
            listener(room, player, reason)
        if not room.players:
            self._delete(room)

    def _delete(self, room: Room) -> None:
        with self._lock:
            if self._rooms.get(room.room_code) is room:
                del self._rooms[room.room_code]
        room.closed = True
        self.notifier.close(room.room_code)
        current_app.logger.info(f"[room-delete] room={room.room_code} status={room.status}")
