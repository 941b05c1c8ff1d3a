# Main Flask app
import logging
import os
import sys
import time
from flask import Flask, g, jsonify, request, send_from_directory
from flask_cors import CORS
from sqlalchemy.exc import OperationalError

from auth import jwt
from config import config
from errors import DatabaseUnavailable, register_error_handlers
from models import db, bcrypt
from routes import users_bp, posts_bp
from uploads import ImageStore


def configure_logging(app):
    if not logging.getLogger().handlers:
        logging.basicConfig(level=app.config['LOG_LEVEL'],
                            format='%(asctime)s %(levelname)s %(name)s - %(message)s')
    app.logger.setLevel(app.config['LOG_LEVEL'])


def connect_database(app):
    """Create the tables, retrying while the database is unreachable."""
    attempts = app.config['DB_CONNECT_ATTEMPTS']
    backoff = app.config['DB_CONNECT_BACKOFF']
    for attempt in range(1, attempts + 1):
        try:
            app.logger.info('Connecting to database (attempt %d/%d)', attempt, attempts)
            with app.app_context():
                db.create_all()
            app.logger.info('Database connected')
            return
        except OperationalError as exc:
            app.logger.error('Database connection error: %s', exc)
            if attempt == attempts:
                raise DatabaseUnavailable(
                    f'Failed to connect to the database after {attempts} attempts') from exc
            app.logger.info('Retrying connection in %s seconds', backoff)
            time.sleep(backoff)


def register_request_logging(app):
    @app.before_request
    def log_request_start():
        g.request_started = time.perf_counter()
        app.logger.debug('%s %s (auth header: %s)', request.method, request.path,
                         'present' if request.headers.get('Authorization') else 'absent')

    @app.after_request
    def log_request_end(response):
        started = g.get('request_started')
        elapsed = (time.perf_counter() - started) * 1000 if started else 0.0
        app.logger.info('%s %s -> %s (%.1f ms)', request.method, request.path,
                        response.status_code, elapsed)
        return response


def create_app(config_name='default', overrides=None):
    app = Flask(__name__, static_folder=None)
    app.config.from_object(config[config_name])
    if overrides:
        app.config.update(overrides)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    bcrypt.init_app(app)
    jwt.init_app(app)
    CORS(app, resources={r"/api/*": {"origins": app.config['CORS_ORIGINS']}},
         supports_credentials=True)

    store = ImageStore(app.config['UPLOAD_FOLDER'], app.config['MAX_UPLOAD_SIZE'])
    store.ensure_directories()
    app.extensions['image_store'] = store

    connect_database(app)

    # Register blueprints
    app.register_blueprint(users_bp, url_prefix='/api/users')
    app.register_blueprint(posts_bp, url_prefix='/api/posts')
    register_error_handlers(app)
    register_request_logging(app)

    @app.route('/api/uploads/<path:filename>', methods=['GET'])
    def uploaded(filename):
        return send_from_directory(store.root, filename)

    @app.route('/api/health', methods=['GET'])
    def health():
        return jsonify({'status': 'ok'}), 200

    return app


if __name__ == '__main__':
    try:
        application = create_app(os.environ.get('FLASK_CONFIG', 'default'))
    except DatabaseUnavailable as exc:
        logging.getLogger(__name__).critical('%s', exc)
        sys.exit(1)
    application.run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)))
