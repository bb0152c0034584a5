import os
from datetime import timedelta

from cachelib import SimpleCache
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key')  # Change this in production
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'mysql+pymysql://root:@localhost/blood_donation')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Server-side sessions, expired after one hour from login
    SESSION_TIMEOUT = int(os.environ.get('SESSION_TIMEOUT', 3600))
    SESSION_TYPE = 'cachelib'
    # create_app builds a FileSystemCache over SESSION_FILE_DIR when SESSION_CACHELIB is unset
    SESSION_FILE_DIR = os.environ.get('SESSION_DIR', 'flask_session')
    SESSION_CACHELIB = None
    SESSION_PERMANENT = True
    PERMANENT_SESSION_LIFETIME = timedelta(seconds=SESSION_TIMEOUT)
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    CORS_ORIGINS = [o.strip() for o in os.environ.get('CORS_ORIGINS', 'http://localhost:5173').split(',') if o.strip()]

    MAIL_ENABLED = _env_flag('MAIL_ENABLED')
    MAIL_SERVER = os.environ.get('MAIL_SERVER', 'localhost')
    MAIL_PORT = int(os.environ.get('MAIL_PORT', 25))
    MAIL_USE_TLS = _env_flag('MAIL_USE_TLS')
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.environ.get('MAIL_DEFAULT_SENDER', 'noreply@bloodconnect.local')

    SCHEDULER_ENABLED = _env_flag('SCHEDULER_ENABLED')
    SCHEDULER_API_ENABLED = False
    REMINDER_HOUR = int(os.environ.get('REMINDER_HOUR', 6))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SESSION_CACHELIB = SimpleCache()
    MAIL_ENABLED = False
    MAIL_SUPPRESS_SEND = True
    SCHEDULER_ENABLED = False
    LOG_LEVEL = 'WARNING'
    BCRYPT_LOG_ROUNDS = 4
