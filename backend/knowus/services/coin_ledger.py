import threading
import weakref
from typing import Optional

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from knowus import db
from knowus.errors import InsufficientFunds, PersistenceError, ValidationError
from knowus.models import CoinBalance, CoinTransaction, _now_ms


SPEND_TYPES = ('game_start', 'refund', 'admin')


class CoinLedger:
    """Authoritative coin balances.

    The persisted row is the only source of truth: client-reported balances
    are never read. Mutations for one app user are serialized by a per-user
    lock, and spends additionally use a conditional UPDATE so the balance
    can never go negative even across processes.
    """

    def __init__(self, notifier, config):
        self.notifier = notifier
        self.config = config
        # Entries vanish once no operation holds the user's lock
        self._locks = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @property
    def max_transaction(self) -> int:
        return int(self.config.get('MAX_COIN_TRANSACTION', 100000))

    def _user_lock(self, app_user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(app_user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[app_user_id] = lock
            return lock

    def _validate(self, app_user_id, amount) -> None:
        if not isinstance(app_user_id, str) or not app_user_id.strip():
            raise ValidationError('appUserId is required')
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError('amount must be an integer')
        if amount <= 0:
            raise ValidationError('amount must be positive')
        if amount > self.max_transaction:
            raise ValidationError(f'amount must not exceed {self.max_transaction}')

    @staticmethod
    def _payload(app_user_id: str, row: Optional[CoinBalance], success: bool, error: Optional[str] = None) -> dict:
        payload = {
            'appUserId': app_user_id,
            'newBalance': row.balance if row is not None else None,
            'version': row.version if row is not None else None,
            'updatedAt': row.updated_at if row is not None else None,
            'success': success,
        }
        if error:
            payload['error'] = error
        return payload

    def get_balance(self, app_user_id: str) -> dict:
        try:
            row = db.session.get(CoinBalance, app_user_id)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError('Could not read coin balance') from exc
        if row is None:
            return {'appUserId': app_user_id, 'balance': 0, 'version': 0, 'updatedAt': None}
        return row.to_dict()

    def add_coins(self, app_user_id: str, amount: int, external_id: Optional[str] = None,
                  transaction_type: str = 'purchase') -> dict:
        """Credit a verified purchase and push ``coins-added`` to the user's sockets.

        A repeated ``external_id`` is acknowledged without crediting twice.
        """
        self._validate(app_user_id, amount)
        with self._user_lock(app_user_id):
            try:
                if external_id:
                    existing = CoinTransaction.query.filter_by(external_id=external_id).first()
                    if existing is not None and existing.app_user_id != app_user_id:
                        db.session.rollback()
                        raise ValidationError('transactionId was already used for another user')
                    if existing is not None:
                        current_app.logger.info(f"[coins-add-dup] user={app_user_id} external_id={external_id}")
                        payload = self._payload(app_user_id, db.session.get(CoinBalance, app_user_id), True)
                        payload['duplicate'] = True
                        return payload
                row = db.session.get(CoinBalance, app_user_id)
                if row is None:
                    row = CoinBalance(app_user_id=app_user_id, balance=0, version=0)
                    db.session.add(row)
                row.balance = row.balance + amount
                row.version = row.version + 1
                row.updated_at = _now_ms()
                db.session.add(CoinTransaction(
                    app_user_id=app_user_id,
                    amount=amount,
                    transaction_type=transaction_type,
                    balance_after=row.balance,
                    external_id=external_id,
                ))
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                current_app.logger.exception(f"[coins-add-error] user={app_user_id} amount={amount}")
                payload = self._payload(app_user_id, None, False, PersistenceError.default_message)
                self.notifier.to_user(app_user_id, 'coins-added', payload)
                return payload

            payload = self._payload(app_user_id, row, True)
            current_app.logger.info(f"[coins-add] user={app_user_id} amount={amount} balance={row.balance} v={row.version}")
            self.notifier.to_user(app_user_id, 'coins-added', payload)
            return payload

    def spend_coins(self, app_user_id: str, amount: int, transaction_type: str = 'game_start') -> dict:
        """Debit coins and push ``coins-spent``; raises InsufficientFunds without mutating."""
        self._validate(app_user_id, amount)
        if transaction_type not in SPEND_TYPES:
            raise ValidationError(f'transactionType must be one of {", ".join(SPEND_TYPES)}')
        with self._user_lock(app_user_id):
            try:
                row = db.session.get(CoinBalance, app_user_id)
                balance = row.balance if row is not None else 0
                if balance < amount:
                    db.session.rollback()
                    raise InsufficientFunds(f'Insufficient coins: balance {balance}, required {amount}')
                result = db.session.execute(
                    update(CoinBalance)
                    .where(CoinBalance.app_user_id == app_user_id, CoinBalance.balance >= amount)
                    .values(
                        balance=CoinBalance.balance - amount,
                        version=CoinBalance.version + 1,
                        updated_at=_now_ms(),
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    db.session.rollback()
                    raise InsufficientFunds('Insufficient coins')
                db.session.refresh(row)
                db.session.add(CoinTransaction(
                    app_user_id=app_user_id,
                    amount=-amount,
                    transaction_type=transaction_type,
                    balance_after=row.balance,
                ))
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                current_app.logger.exception(f"[coins-spend-error] user={app_user_id} amount={amount}")
                payload = self._payload(app_user_id, None, False, PersistenceError.default_message)
                self.notifier.to_user(app_user_id, 'coins-spent', payload)
                return payload

            payload = self._payload(app_user_id, row, True)
            current_app.logger.info(
                f"[coins-spend] user={app_user_id} amount={amount} type={transaction_type} balance={row.balance} v={row.version}"
            )
            self.notifier.to_user(app_user_id, 'coins-spent', payload)
            return payload

    def notify_failure(self, app_user_id: str, event: str, error: str) -> dict:
        """Tell the user's sockets an operation was rejected, with the persisted balance."""
        try:
            row = db.session.get(CoinBalance, app_user_id)
            known = True
        except SQLAlchemyError:
            db.session.rollback()
            row, known = None, False
        payload = self._payload(app_user_id, row, False, error)
        if row is None and known:
            payload.update(newBalance=0, version=0)
        self.notifier.to_user(app_user_id, event, payload)
        return payload
