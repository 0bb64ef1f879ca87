# app configuration (database, tokens, mail, uploads)

import os
from dotenv import load_dotenv
from datetime import timedelta

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', "default_secret_key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DB_CONNECTION_STRING',
        'sqlite:///' + os.path.join(BASE_DIR, 'orii.db')
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    REDIS_HOST = os.getenv('REDIS_HOST', 'localhost')
    REDIS_PORT = int(os.getenv('REDIS_PORT', 6379))
    REDIS_DB = int(os.getenv('REDIS_DB', 0))

    # JWT Configuration
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', SECRET_KEY)
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=7)

    # Mail Configuration
    MAIL_SERVER = os.getenv('MAIL_SERVER')
    MAIL_PORT = int(os.getenv('MAIL_PORT', 465))
    MAIL_USE_SSL = os.getenv('MAIL_USE_SSL', 'true').lower() == 'true'
    MAIL_USE_TLS = os.getenv('MAIL_USE_TLS', 'false').lower() == 'true'
    MAIL_USERNAME = os.getenv('MAIL_USERNAME')
    MAIL_PASSWORD = os.getenv('MAIL_PASSWORD')
    DEFAULT_SENDER = os.getenv('DEFAULT_SENDER', 'noreply@orii.local')

    FRONTEND_URL = os.getenv('FRONTEND_URL', 'http://localhost:3000')
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', FRONTEND_URL).split(',')

    INSTITUTE_TIMEZONE = os.getenv('INSTITUTE_TIMEZONE', 'Asia/Kolkata')

    # Largest bucket limit is 25 MB; multi-file paper uploads get some headroom
    MAX_CONTENT_LENGTH = 100 * 1024 * 1024

    INACTIVE_ACCOUNT_DAYS = 180
    STANDARD_WORK_HOURS = 8
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SECRET_KEY = 'test-secret-key'
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length'
    MAIL_BACKEND = 'locmem'
    DEFAULT_SENDER = 'noreply@test.local'
