import hmac

from flask import Blueprint, current_app, jsonify, request
from knowus.errors import GameError
from knowus.services import get_services


coins = Blueprint('coins', __name__)


def _webhook_authorized() -> bool:
    secret = current_app.config.get('COIN_WEBHOOK_SECRET')
    if not secret:
        # Without a configured secret the webhook stays closed
        return False
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    return scheme.lower() == 'bearer' and hmac.compare_digest(token.strip(), secret)


@coins.route('/webhook', methods=['POST'])
def purchase_webhook():
    """Credit coins for a purchase verified by the store provider.

    Body: {"appUserId": str, "amount": int, "transactionId": str (optional)}.
    A repeated transactionId is acknowledged without crediting twice.
    """
    if not _webhook_authorized():
        return jsonify({'error': 'Unauthorized'}), 401
    data = request.get_json(silent=True) or {}
    app_user_id = data.get('appUserId')
    try:
        payload = get_services().ledger.add_coins(
            app_user_id,
            data.get('amount'),
            external_id=data.get('transactionId'),
        )
    except GameError as exc:
        current_app.logger.info(f"[coins-webhook-rejected] user={app_user_id} code={exc.code} message={exc.message}")
        return jsonify({'error': exc.message, 'code': exc.code}), exc.status_code
    if not payload['success']:
        return jsonify(payload), 503
    return jsonify(payload), 200


@coins.route('/<string:app_user_id>', methods=['GET'])
def get_balance(app_user_id):
    try:
        return jsonify(get_services().ledger.get_balance(app_user_id))
    except GameError as exc:
        return jsonify({'error': exc.message, 'code': exc.code}), exc.status_code
