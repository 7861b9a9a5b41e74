from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def _cors_origins(value):
    if not value or value == '*':
        return '*'
    return [origin.strip() for origin in value.split(',') if origin.strip()]


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = _cors_origins(flask_app.config.get('CORS_ORIGINS'))
    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Import models so metadata is complete before any create_all / migration
    from knowus import models  # noqa: F401

    # Room store, engine, ledger and caches are per-app
    from knowus.services import GameServices
    flask_app.extensions['knowus'] = GameServices(flask_app, socketio)

    from knowus.main import main
    flask_app.register_blueprint(main)

    from knowus.api.categories import categories
    flask_app.register_blueprint(categories, url_prefix='/api/categories')

    from knowus.api.coins import coins
    flask_app.register_blueprint(coins, url_prefix='/api/coins')

    # Register Socket.IO event handlers on the initialized socketio instance
    from knowus.socketio_events import register_socketio_handlers
    register_socketio_handlers(namespace=flask_app.config.get('SOCKETIO_NAMESPACE', '/'))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from knowus.services.question_bank import load_question_bank
        db.drop_all()
        db.create_all()
        counts = load_question_bank(flask_app.config.get('QUESTION_BANK_PATH'))
        flask_app.extensions['knowus'].categories.clear()
        click.echo(f"Database has been reset and seeded with {counts['categories']} categories, {counts['questions']} questions!")

    @click.command('seed-questions')
    @click.argument('path', required=False)
    def seed_questions_command(path):
        """Upserts categories and questions from a JSON question bank."""
        from knowus.services.question_bank import load_question_bank
        counts = load_question_bank(path or flask_app.config.get('QUESTION_BANK_PATH'))
        flask_app.extensions['knowus'].categories.clear()
        click.echo(f"Loaded {counts['categories']} categories and {counts['questions']} questions.")

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(seed_questions_command)

    return flask_app
