# Token service and the auth guard for protected routes
from functools import wraps
from flask import current_app, g, request
from flask_jwt_extended import JWTManager, create_access_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from errors import InvalidToken, Unauthorized, NO_TOKEN, TOKEN_INVALID, USER_NOT_FOUND
from models import db, User

jwt = JWTManager()


def issue_token(user_id, expires_delta=None):
    """Sign a bearer token for ``user_id``; expiry defaults to JWT_ACCESS_TOKEN_EXPIRES."""
    if expires_delta is None:
        return create_access_token(identity=str(user_id))
    return create_access_token(identity=str(user_id), expires_delta=expires_delta)


def verify_token(token):
    """Return the user id carried by ``token``.

    Raises InvalidToken when the signature does not match, the payload
    cannot be decoded, or the token has expired. The user store is not
    consulted here.
    """
    try:
        claims = decode_token(token)
    except (PyJWTError, JWTExtendedException) as exc:
        raise InvalidToken(str(exc)) from exc
    user_id = claims.get(current_app.config.get('JWT_IDENTITY_CLAIM', 'sub'))
    if not isinstance(user_id, str) or not user_id:
        raise InvalidToken('Token carries no user identity')
    return user_id


def bearer_token(header):
    # exactly "Bearer <token>"
    if not header:
        return None
    scheme, _, token = header.partition(' ')
    if scheme != 'Bearer' or not token or ' ' in token:
        return None
    return token


def _reject(reason, message):
    current_app.logger.warning('Auth failure: %s %s %s', reason, request.method, request.path)
    raise Unauthorized(message, error=reason)


def auth_required(fn):
    """Resolve the bearer token to a stored user before running the view."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        token = bearer_token(request.headers.get('Authorization'))
        if token is None:
            _reject(NO_TOKEN, 'Not authorized, no token')

        try:
            user_id = verify_token(token)
        except InvalidToken:
            _reject(TOKEN_INVALID, 'Not authorized, token failed')

        user = db.session.get(User, user_id)
        if user is None:
            _reject(USER_NOT_FOUND, 'Not authorized, user not found')

        g.current_user = user
        return fn(*args, **kwargs)
    return wrapper


def current_user():
    return g.current_user
