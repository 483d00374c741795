"""Middleware for bearer-token authentication and access scope."""
from functools import wraps
from flask import g, request, current_app
from app.database import get_session
from app.exceptions import UnauthorizedError, ForbiddenError, OpticaError
from app.services.access_scope import resolve_scope
from app.services.auth_service import load_user_from_token


def _bearer_token():
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def load_user_and_scope():
    """
    Load current user and access scope into g (Flask's per-request global).

    Called before each request. Sets g.user, g.scope and g.auth_error; a bad
    token is only an error once a protected route is hit.
    """
    g.user = None
    g.scope = resolve_scope(None)
    g.auth_error = None

    token = _bearer_token()
    if not token:
        return

    try:
        user = load_user_from_token(get_session(), token, current_app.config['JWT_SECRET'])
    except OpticaError as e:
        g.auth_error = e
        return

    g.user = user
    g.scope = resolve_scope(user)


def require_auth(f):
    """
    Decorator: Require a valid bearer token.

    Raises UnauthorizedError (401) when the token is missing, invalid or expired.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            raise g.get('auth_error') or UnauthorizedError()
        return f(*args, **kwargs)
    return decorated_function


def require_admin(f):
    """
    Decorator: Require an authenticated admin.

    401 without a valid token, 403 for non-admin users.
    """
    @wraps(f)
    @require_auth
    def decorated_function(*args, **kwargs):
        if not g.user.is_admin:
            raise ForbiddenError('Se requieren permisos de administrador')
        return f(*args, **kwargs)
    return decorated_function
