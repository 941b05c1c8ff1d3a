# Error types and the handlers that turn them into JSON responses
import traceback
from flask import current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from models import db

NO_TOKEN = 'NoToken'
TOKEN_INVALID = 'TokenInvalid'
USER_NOT_FOUND = 'UserNotFound'
NOT_OWNER = 'NotOwner'


class ApiError(Exception):
    """Base class for failures that map onto an HTTP status."""
    status_code = 500
    message = 'Server error'

    def __init__(self, message=None, error=None):
        super().__init__(message or self.message)
        if message:
            self.message = message
        self.error = error

    def to_dict(self):
        body = {"message": self.message}
        if self.error:
            body["error"] = self.error
        return body


class ValidationError(ApiError):
    status_code = 400
    message = 'Invalid request'


class Unauthorized(ApiError):
    status_code = 401
    message = 'Not authorized'


class NotFound(ApiError):
    status_code = 404
    message = 'Not found'


class InvalidFileType(ApiError):
    status_code = 400
    message = 'Images only! Allowed types: jpeg, jpg, png'


class FileTooLarge(ApiError):
    status_code = 413
    message = 'File too large. Maximum size is 5MB'


class StorageWriteError(ApiError):
    status_code = 500
    message = 'Failed to store uploaded file'


class StoreError(ApiError):
    status_code = 500
    message = 'Database error'


class InvalidToken(Exception):
    """Raised by the token service; carries no HTTP meaning on its own."""


class DatabaseUnavailable(Exception):
    """The database could not be reached during startup."""


def error_response(error, cause=None):
    """JSON body for ``error``; the stack of ``cause`` (or the error) in development."""
    body = error.to_dict()
    if current_app.config.get('EXPOSE_STACK_TRACES'):
        source = cause or error
        body["stack"] = ''.join(traceback.format_exception(
            type(source), source, source.__traceback__))
    return jsonify(body), error.status_code


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(exc):
        if exc.status_code >= 500:
            app.logger.exception('Request failed: %s', exc.message)
        return error_response(exc)

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(exc):
        app.logger.warning('Rejected oversized request body')
        return error_response(FileTooLarge(), exc)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        return jsonify({"message": exc.description}), exc.code

    @app.errorhandler(SQLAlchemyError)
    def handle_store_error(exc):
        db.session.rollback()
        app.logger.exception('Store error')
        return error_response(StoreError(), exc)

    @app.errorhandler(Exception)
    def handle_unexpected(exc):
        app.logger.exception('Unhandled error')
        return error_response(ApiError(), exc)
