from flask import current_app

from knowus.errors import (
    InvalidState,
    NotEnoughPlayers,
    NotHost,
    PlayerNotFound,
    RoomNotFound,
    ValidationError,
)
from knowus.rooms import (
    FINISHED,
    PLAYING,
    STAGE_QUESTION,
    STAGE_ROUND_COMPLETE,
    WAITING,
    Round,
    now_ms,
)
from .scheduler import QUESTION_DEADLINE, ROOM_EXPIRY, ROUND_RESULT
from .scoring import default_answer, is_round_matched, match_percentage


TIMEOUT_DEFAULT_ANSWER = 'default_answer'
TIMEOUT_NO_ANSWER = 'no_answer'
TIMEOUT_POLICIES = (TIMEOUT_DEFAULT_ANSWER, TIMEOUT_NO_ANSWER)


class GameEngine:
    """Per-room game progression.

    waiting -> playing(question i) -> round_complete(i) -> playing(question i+1)
    -> ... -> finished. Every transition runs under the room's lock and emits
    its event before releasing it, so room events go out in commit order.
    """

    def __init__(self, store, questions, notifier, timers, config):
        self.store = store
        self.questions = questions
        self.notifier = notifier
        self.timers = timers
        self.config = config
        policy = config.get('ROUND_TIMEOUT_POLICY', TIMEOUT_DEFAULT_ANSWER)
        if policy not in TIMEOUT_POLICIES:
            raise ValueError(f'ROUND_TIMEOUT_POLICY must be one of {", ".join(TIMEOUT_POLICIES)}, got {policy!r}')
        self.timeout_policy = policy
        store.add_removal_listener(self._on_player_removed)

    @property
    def min_players(self) -> int:
        return int(self.config.get('MIN_PLAYERS', 2))

    def start_game(self, room_code, requester_id: str):
        with self.store.locked(room_code) as room:
            requester = room.get_player(requester_id)
            if requester is None or not requester.is_host:
                raise NotHost('Only the host can start the game')
            if room.status != WAITING:
                raise InvalidState('Game has already started')
            if len(room.players) < self.min_players:
                raise NotEnoughPlayers(f'At least {self.min_players} players are required to start')

            questions = self.questions.select(
                room.settings['category'],
                room.total_questions,
                seed=f"{room.room_code}:{room.created_at}",
            )
            room.questions = questions
            room.settings['totalQuestions'] = len(questions)
            room.status = PLAYING
            room.match_score = 0
            room.completed_rounds = []
            self._open_round(room, 0)

            self.notifier.to_room(room.room_code, 'game-started', {
                'room': room.to_dict(),
                'question': room.current_question,
                'totalQuestions': room.total_questions,
                'questionDeadline': room.question_deadline,
            })
            current_app.logger.info(
                f"[game-start] room={room.room_code} players={len(room.players)} questions={room.total_questions}"
            )
            return room

    def submit_answer(self, room_code, player_id: str, question_id, answer) -> bool:
        """Record an answer; returns False when it was a duplicate and ignored."""
        answer = self._validate_answer(answer)
        with self.store.locked(room_code) as room:
            if room.status != PLAYING:
                raise InvalidState('Game is not in progress')
            player = room.get_player(player_id)
            if player is None:
                raise PlayerNotFound()
            question = room.current_question
            rnd = room.current_round
            if question is None or rnd is None or question['id'] != question_id:
                raise InvalidState('That is not the current question')
            if rnd.has_answered(player_id):
                current_app.logger.info(f"[answer-dup] room={room.room_code} player={player_id} q={rnd.question_index}")
                return False
            if rnd.resolved:
                raise InvalidState('This round is already complete')

            rnd.answers[player_id] = answer
            player.answered_questions.append({'questionId': question_id, 'answer': answer, 'timedOut': False})
            self.notifier.to_room(room.room_code, 'player-answered', {
                'playerId': player.id,
                'playerName': player.name,
            })
            if all(rnd.has_answered(p.id) for p in room.players):
                self._resolve_round(room, all_answered=True)
            return True

    def expire_question(self, room_code, question_index: int) -> None:
        """Deadline callback: resolve the round with whatever has been submitted."""
        try:
            with self.store.locked(room_code) as room:
                if room.status != PLAYING or room.stage != STAGE_QUESTION or room.current_question_index != question_index:
                    current_app.logger.info(f"[round-timeout-skip] room={room.room_code} q={question_index}")
                    return
                current_app.logger.info(f"[round-timeout] room={room.room_code} q={question_index}")
                self._resolve_round(room, all_answered=False)
        except RoomNotFound:
            return

    def advance(self, room_code, question_index: int) -> None:
        """Result-display callback: move past a completed round."""
        try:
            with self.store.locked(room_code) as room:
                if room.status != PLAYING or room.stage != STAGE_ROUND_COMPLETE or room.current_question_index != question_index:
                    current_app.logger.info(f"[advance-skip] room={room.room_code} q={question_index}")
                    return
                self._advance(room)
        except RoomNotFound:
            return

    # ---- internals, called with room.lock held ----

    def _validate_answer(self, answer) -> str:
        if not isinstance(answer, str) or not answer.strip():
            raise ValidationError('answer is required')
        max_len = int(self.config.get('ANSWER_MAX_LEN', 200))
        if len(answer) > max_len:
            raise ValidationError(f'answer must be at most {max_len} characters')
        return answer

    def _open_round(self, room, index: int) -> None:
        room.current_question_index = index
        room.stage = STAGE_QUESTION
        room.current_round = Round(index, room.questions[index])
        duration = float(self.config.get('QUESTION_DURATION_SEC', 30))
        room.question_deadline = now_ms() + int(duration * 1000)
        self.timers.schedule(room.room_code, QUESTION_DEADLINE, duration, self.expire_question, room.room_code, index)

    def _resolve_round(self, room, all_answered: bool) -> None:
        rnd = room.current_round
        if rnd is None or rnd.resolved:
            return
        self.timers.cancel(room.room_code, QUESTION_DEADLINE)

        if not all_answered:
            for p in room.players:
                if rnd.has_answered(p.id):
                    continue
                filler = default_answer(rnd.question) if self.timeout_policy == TIMEOUT_DEFAULT_ANSWER else None
                rnd.answers[p.id] = filler
                rnd.timed_out.add(p.id)
                p.answered_questions.append({'questionId': rnd.question['id'], 'answer': filler, 'timedOut': True})

        # Players who left mid-round are not part of the comparison
        matched = is_round_matched(rnd.answers[p.id] for p in room.players)
        rnd.resolved = True
        rnd.is_matched = matched
        rnd.player_answers = [
            {
                'playerId': p.id,
                'playerName': p.name,
                'avatar': p.avatar,
                'answer': rnd.answers[p.id],
                'timedOut': p.id in rnd.timed_out,
            }
            for p in room.players
        ]
        if matched:
            room.match_score += 1
            for p in room.players:
                p.score += 1
        room.stage = STAGE_ROUND_COMPLETE
        room.question_deadline = None
        room.completed_rounds.append(rnd)

        self.notifier.to_room(room.room_code, 'round-completed', {
            'allPlayersAnswered': all_answered,
            'isMatched': matched,
            'playerAnswers': rnd.player_answers,
            'question': rnd.question,
            'matchScore': room.match_score,
            'totalQuestions': room.total_questions,
            'percentage': match_percentage(room.match_score, room.total_questions),
        })
        current_app.logger.info(
            f"[round-complete] room={room.room_code} q={rnd.question_index} matched={matched} score={room.match_score}"
        )

        delay = float(self.config.get('ROUND_RESULT_DURATION_SEC', 4))
        if self.timers.enabled and delay > 0:
            self.timers.schedule(room.room_code, ROUND_RESULT, delay, self.advance, room.room_code, rnd.question_index)
        else:
            self._advance(room)

    def _advance(self, room) -> None:
        next_index = room.current_question_index + 1
        if next_index < len(room.questions):
            self._open_round(room, next_index)
            self.notifier.to_room(room.room_code, 'next-question', {
                'question': room.current_question,
                'currentQuestionIndex': room.current_question_index,
                'totalQuestions': room.total_questions,
                'questionDeadline': room.question_deadline,
            })
            return
        self._finish(room)

    def _close_game(self, room) -> None:
        room.status = FINISHED
        room.stage = None
        room.current_round = None
        room.question_deadline = None
        room.finished_at = now_ms()
        self.timers.cancel(room.room_code)
        ttl = float(self.config.get('FINISHED_ROOM_TTL_SEC', 300))
        self.timers.schedule(room.room_code, ROOM_EXPIRY, ttl, self.store.discard_room, room.room_code)

    def _finish(self, room) -> None:
        self._close_game(room)
        self.notifier.to_room(room.room_code, 'game-finished', {
            'matchScore': room.match_score,
            'totalQuestions': room.total_questions,
            'percentage': match_percentage(room.match_score, room.total_questions),
            'completedRounds': [r.to_summary() for r in room.completed_rounds],
        })
        current_app.logger.info(f"[game-finish] room={room.room_code} score={room.match_score}/{room.total_questions}")

    def _cancel(self, room, message: str) -> None:
        self._close_game(room)
        self.notifier.to_room(room.room_code, 'game-cancelled', {
            'message': message,
            'room': room.to_dict(),
        })
        current_app.logger.info(f"[game-cancel] room={room.room_code} reason={message!r}")

    def _on_player_removed(self, room, player, reason: str) -> None:
        if not room.players:
            self.timers.cancel(room.room_code)
            return
        if room.status != PLAYING:
            return
        if len(room.players) < self.min_players:
            self._cancel(room, f'{player.name} left the game')
            return
        rnd = room.current_round
        if room.stage == STAGE_QUESTION and rnd and not rnd.resolved:
            if all(rnd.has_answered(p.id) for p in room.players):
                self._resolve_round(room, all_answered=True)
