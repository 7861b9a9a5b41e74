import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///knowus.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')
    SOCKETIO_NAMESPACE = os.environ.get('SOCKETIO_NAMESPACE', '/')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    # Rooms
    ROOM_CODE_LENGTH = int(os.environ.get('ROOM_CODE_LENGTH', '6'))
    DEFAULT_MAX_PLAYERS = int(os.environ.get('DEFAULT_MAX_PLAYERS', '2'))
    MAX_PLAYERS_LIMIT = int(os.environ.get('MAX_PLAYERS_LIMIT', '8'))
    MIN_PLAYERS = int(os.environ.get('MIN_PLAYERS', '2'))
    DEFAULT_TOTAL_QUESTIONS = int(os.environ.get('DEFAULT_TOTAL_QUESTIONS', '10'))
    MAX_TOTAL_QUESTIONS = int(os.environ.get('MAX_TOTAL_QUESTIONS', '50'))
    PLAYER_NAME_MAX_LEN = int(os.environ.get('PLAYER_NAME_MAX_LEN', '20'))
    ANSWER_MAX_LEN = int(os.environ.get('ANSWER_MAX_LEN', '200'))
    CHAT_MESSAGE_MAX_LEN = int(os.environ.get('CHAT_MESSAGE_MAX_LEN', '500'))
    # Used to build the shareable https://<domain>/join/<ROOMCODE> link. Empty disables it.
    JOIN_URL_BASE = os.environ.get('JOIN_URL_BASE', '')
    # Round timers (seconds)
    QUESTION_DURATION_SEC = float(os.environ.get('QUESTION_DURATION_SEC', '30'))
    ROUND_RESULT_DURATION_SEC = float(os.environ.get('ROUND_RESULT_DURATION_SEC', '4'))
    FINISHED_ROOM_TTL_SEC = float(os.environ.get('FINISHED_ROOM_TTL_SEC', '300'))
    # default_answer: stragglers get the first option (or "yes"); no_answer: the round cannot match
    ROUND_TIMEOUT_POLICY = os.environ.get('ROUND_TIMEOUT_POLICY', 'default_answer')
    # Question bank
    CATEGORY_CACHE_TTL_SEC = float(os.environ.get('CATEGORY_CACHE_TTL_SEC', '3600'))
    QUESTION_BANK_PATH = os.environ.get('QUESTION_BANK_PATH')
    # Coins
    MAX_COIN_TRANSACTION = int(os.environ.get('MAX_COIN_TRANSACTION', '100000'))
    COIN_WEBHOOK_SECRET = os.environ.get('COIN_WEBHOOK_SECRET')
