"""In-memory room state.

Rooms live only in the process that hosts their sockets; the room store
owns them and every mutation happens under ``Room.lock``.
"""
import threading
import time
from typing import Dict, List, Optional, Set


WAITING = 'waiting'
PLAYING = 'playing'
FINISHED = 'finished'

# Stages inside PLAYING
STAGE_QUESTION = 'question'
STAGE_ROUND_COMPLETE = 'round_complete'


def now_ms() -> int:
    return int(time.time() * 1000)


class Player:
    def __init__(self, id: str, name: str, avatar: str, is_host: bool = False):
        self.id = id
        self.name = name
        self.avatar = avatar
        self.is_host = is_host
        self.score = 0
        self.answered_questions: List[dict] = []

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'avatar': self.avatar,
            'isHost': self.is_host,
            'score': self.score,
            'answeredQuestions': list(self.answered_questions),
        }


class Round:
    """Answer collection for the question at ``question_index``."""

    def __init__(self, question_index: int, question: dict):
        self.question_index = question_index
        self.question = question
        self.answers: Dict[str, Optional[str]] = {}
        self.timed_out: Set[str] = set()
        self.resolved = False
        self.is_matched = False
        self.player_answers: List[dict] = []

    def has_answered(self, player_id: str) -> bool:
        return player_id in self.answers

    def to_summary(self):
        return {
            'question': self.question,
            'isMatched': self.is_matched,
            'playerAnswers': list(self.player_answers),
        }


class Room:
    def __init__(self, room_code: str, settings: dict):
        self.room_code = room_code
        self.created_at = now_ms()
        self.status = WAITING
        self.stage: Optional[str] = None
        self.players: List[Player] = []
        self.current_question_index = 0
        self.questions: List[dict] = []
        self.settings = settings
        self.match_score = 0
        self.current_round: Optional[Round] = None
        self.completed_rounds: List[Round] = []
        self.question_deadline: Optional[int] = None
        self.finished_at: Optional[int] = None
        self.join_url: Optional[str] = None
        self.closed = False
        self.lock = threading.RLock()

    @property
    def host(self) -> Optional[Player]:
        for p in self.players:
            if p.is_host:
                return p
        return None

    @property
    def current_question(self) -> Optional[dict]:
        if 0 <= self.current_question_index < len(self.questions):
            return self.questions[self.current_question_index]
        return None

    @property
    def total_questions(self) -> int:
        return int(self.settings.get('totalQuestions') or 0)

    def get_player(self, player_id: str) -> Optional[Player]:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def is_full(self) -> bool:
        return len(self.players) >= int(self.settings['maxPlayers'])

    def to_dict(self):
        payload = {
            'roomCode': self.room_code,
            'createdAt': self.created_at,
            'status': self.status,
            'players': [p.to_dict() for p in self.players],
            'currentQuestionIndex': self.current_question_index,
            'questions': list(self.questions),
            'settings': dict(self.settings),
            'matchScore': self.match_score,
            'questionDeadline': self.question_deadline,
        }
        if self.join_url:
            payload['joinUrl'] = self.join_url
        return payload
