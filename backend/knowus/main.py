from flask import Blueprint, jsonify
from knowus.services import get_services

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the KnowUsBetter game server!'})

@main.route('/health')
def health():
    services = get_services()
    return jsonify({
        'status': 'ok',
        'rooms': len(services.rooms),
        'connections': len(services.connections),
    })
