from knowus import db
import time
import uuid


def _now_ms():
    return int(time.time() * 1000)


class Category(db.Model):
    __tablename__ = 'categories'
    id = db.Column(db.String(64), primary_key=True)
    labels = db.Column(db.JSON, nullable=False, default=dict)
    color = db.Column(db.String(16), nullable=True)
    icon_name = db.Column(db.String(64), nullable=True)
    icon_type = db.Column(db.String(32), nullable=True)
    coins_required = db.Column(db.Integer, nullable=False, default=0)
    is_premium = db.Column(db.Boolean, nullable=False, default=False)
    order_index = db.Column(db.Integer, nullable=False, default=0)
    questions = db.relationship('Question', back_populates='category', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'labels': dict(self.labels or {}),
            'color': self.color,
            'iconName': self.icon_name,
            'iconType': self.icon_type,
            'coinsRequired': self.coins_required or 0,
            'isPremium': bool(self.is_premium),
            'orderIndex': self.order_index or 0,
        }


class Question(db.Model):
    __tablename__ = 'questions'
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    category_id = db.Column(db.String(64), db.ForeignKey('categories.id'), nullable=False, index=True)
    texts = db.Column(db.JSON, nullable=False, default=dict)
    have_answers = db.Column(db.Boolean, nullable=False, default=False)
    answers = db.Column(db.JSON, nullable=False, default=list)
    category = db.relationship('Category', back_populates='questions')

    def to_dict(self):
        return {
            'id': self.id,
            'texts': dict(self.texts or {}),
            'category': self.category_id,
            'haveAnswers': bool(self.have_answers),
            'answers': list(self.answers or []),
        }


class CoinBalance(db.Model):
    __tablename__ = 'coins'
    app_user_id = db.Column(db.String(128), primary_key=True)
    balance = db.Column(db.Integer, nullable=False, default=0)
    # Bumped on every mutation so clients can drop stale pushes
    version = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.BigInteger, nullable=False, default=_now_ms, onupdate=_now_ms)

    __table_args__ = (
        db.CheckConstraint('balance >= 0', name='ck_coins_balance_non_negative'),
    )

    def to_dict(self):
        return {
            'appUserId': self.app_user_id,
            'balance': self.balance,
            'version': self.version,
            'updatedAt': self.updated_at,
        }


class CoinTransaction(db.Model):
    __tablename__ = 'coin_transactions'
    id = db.Column(db.Integer, primary_key=True)
    app_user_id = db.Column(db.String(128), db.ForeignKey('coins.app_user_id'), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)  # signed: purchases > 0, spends < 0
    transaction_type = db.Column(db.String(32), nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)
    external_id = db.Column(db.String(128), nullable=True, unique=True)
    created_at = db.Column(db.BigInteger, nullable=False, default=_now_ms)
    account = db.relationship('CoinBalance', backref=db.backref('transactions', lazy='dynamic'))

    def to_dict(self):
        return {
            'id': self.id,
            'appUserId': self.app_user_id,
            'amount': self.amount,
            'transactionType': self.transaction_type,
            'balanceAfter': self.balance_after,
            'externalId': self.external_id,
            'createdAt': self.created_at,
        }
