import json
import os
import random
import threading
import time
from typing import Callable, Dict, List, Optional

from flask import current_app

from knowus import db
from knowus.errors import ValidationError
from knowus.models import Category, Question


DEFAULT_QUESTION_BANK = os.path.join(os.path.dirname(os.path.dirname(__file__)), 'data', 'question_bank.json')


def _load_categories() -> List[dict]:
    return [c.to_dict() for c in Category.query.order_by(Category.order_index.asc(), Category.id.asc()).all()]


class CategoryCache:
    """Category list cached for ``ttl`` seconds.

    One instance per application, so independent apps (and tests) never
    share a stale copy.
    """

    def __init__(self, ttl: float, loader: Callable[[], List[dict]] = _load_categories, clock=time.monotonic):
        self.ttl = ttl
        self._loader = loader
        self._clock = clock
        self._lock = threading.Lock()
        self._categories: Optional[List[dict]] = None
        self._loaded_at: Optional[float] = None

    def get_all(self) -> List[dict]:
        with self._lock:
            now = self._clock()
            if self._categories is not None and self._loaded_at is not None and now - self._loaded_at < self.ttl:
                return self._categories
            self._categories = self._loader()
            self._loaded_at = now
            current_app.logger.info(f"[categories] loaded {len(self._categories)} categories")
            return self._categories

    def get(self, category_id: str) -> Optional[dict]:
        for category in self.get_all():
            if category['id'] == category_id:
                return category
        return None

    def exists(self, category_id: str) -> bool:
        return self.get(category_id) is not None

    def clear(self) -> None:
        with self._lock:
            self._categories = None
            self._loaded_at = None


class QuestionProvider:
    """Picks the questions a room plays with.

    Selection is deterministic for a given seed so a room's question set can
    be reproduced from its code and creation time.
    """

    def __init__(self, categories: CategoryCache):
        self.categories = categories

    def select(self, category_id: str, count: int, seed: str) -> List[dict]:
        if not self.categories.exists(category_id):
            raise ValidationError(f'Unknown category: {category_id}')
        pool = Question.query.filter_by(category_id=category_id).order_by(Question.id.asc()).all()
        if not pool:
            raise ValidationError(f'No questions available for category: {category_id}')
        rng = random.Random(seed)
        picked = rng.sample(pool, min(count, len(pool)))
        return [q.to_dict() for q in picked]


def load_question_bank(path: Optional[str] = None) -> Dict[str, int]:
    """Upsert categories and questions from a JSON file.

    The file holds ``{"categories": [...], "questions": [...]}`` using the
    same camelCase keys the client sees.
    """
    path = path or DEFAULT_QUESTION_BANK
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    categories = data.get('categories') or []
    questions = data.get('questions') or []
    for entry in categories:
        category = db.session.get(Category, entry['id']) or Category(id=entry['id'])
        category.labels = entry.get('labels') or {}
        category.color = entry.get('color')
        category.icon_name = entry.get('iconName')
        category.icon_type = entry.get('iconType')
        category.coins_required = int(entry.get('coinsRequired') or 0)
        category.is_premium = bool(entry.get('isPremium'))
        category.order_index = int(entry.get('orderIndex') or 0)
        db.session.add(category)
    db.session.flush()

    for entry in questions:
        question = db.session.get(Question, entry['id']) or Question(id=entry['id'])
        question.category_id = entry['category']
        question.texts = entry.get('texts') or {}
        question.have_answers = bool(entry.get('haveAnswers'))
        question.answers = list(entry.get('answers') or [])
        db.session.add(question)
    db.session.commit()
    return {'categories': len(categories), 'questions': len(questions)}
