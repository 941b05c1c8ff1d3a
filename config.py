# Configuration settings
import os
from datetime import timedelta
from dotenv import load_dotenv

load_dotenv()


def _csv(value):
    return [item.strip() for item in value.split(',') if item.strip()]


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-change-me')
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'DATABASE_URL', 'sqlite:///' + os.path.join(os.getcwd(), 'blog.db'))
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY', SECRET_KEY)
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=30)
    BCRYPT_LOG_ROUNDS = 12

    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', os.path.join(os.getcwd(), 'uploads'))
    MAX_UPLOAD_SIZE = 5 * 1024 * 1024
    # room for the text fields sent alongside the file
    MAX_CONTENT_LENGTH = MAX_UPLOAD_SIZE + 64 * 1024

    POSTS_PER_PAGE = 10
    DB_CONNECT_ATTEMPTS = 3
    DB_CONNECT_BACKOFF = 5
    CORS_ORIGINS = _csv(os.environ.get(
        'CORS_ORIGINS', 'http://localhost:3000,http://localhost:5000'))

    DEBUG = False
    TESTING = False
    EXPOSE_STACK_TRACES = False
    LOG_LEVEL = 'INFO'


class DevelopmentConfig(Config):
    DEBUG = True
    EXPOSE_STACK_TRACES = True
    LOG_LEVEL = 'DEBUG'


class ProductionConfig(Config):
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    JWT_SECRET_KEY = 'testing-secret-key-that-is-long-enough-for-hs256'
    BCRYPT_LOG_ROUNDS = 4
    DB_CONNECT_BACKOFF = 0


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
