import math
from typing import Iterable, Optional


def normalize_answer(answer: Optional[str]) -> Optional[str]:
    """Case- and surrounding-whitespace-insensitive form used for matching."""
    if answer is None:
        return None
    return str(answer).strip().lower()


def is_round_matched(answers: Iterable[Optional[str]]) -> bool:
    """A round matches when every active player gave the same normalized answer.

    A missing answer (``None``) never matches; neither does an empty round.
    """
    normalized = [normalize_answer(a) for a in answers]
    if not normalized or any(a is None for a in normalized):
        return False
    return len(set(normalized)) == 1


def match_percentage(match_score: int, total_questions: int) -> int:
    """Matched rounds as a whole percentage, rounding halves up."""
    if not total_questions:
        return 0
    return int(math.floor(match_score * 100.0 / total_questions + 0.5))


def default_answer(question: dict) -> str:
    """Answer assumed for a player who let the clock run out."""
    answers = question.get('answers') or []
    if question.get('haveAnswers') and answers:
        return answers[0]
    return 'yes'
