"""
Authentication service.

Local username/password login, HS256 bearer tokens and password reset.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from app.exceptions import ForbiddenError, UnauthorizedError, ValidationError
from app.models import Optic, User
from app.services import user_service
from app.utils.validators import require_text, validate_email

logger = logging.getLogger(__name__)

JWT_ALGORITHM = 'HS256'
MIN_PASSWORD_LENGTH = 6


def validate_password(password: Any, field: str = 'password') -> str:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f'La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres', field=field
        )
    return password


def issue_token(user: User, secret: str, expiration_hours: int = 24) -> str:
    payload = {
        'sub': str(user.id),
        'username': user.username,
        'role': user.role,
        'optic_id': user.optic_id,
        'exp': datetime.now(timezone.utc) + timedelta(hours=expiration_hours),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, secret: str) -> Dict[str, Any]:
    """
    Decode and verify a bearer token.

    Raises:
        UnauthorizedError: expired, malformed or badly signed token
    """
    try:
        return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError('Token expirado')
    except jwt.InvalidTokenError:
        raise UnauthorizedError('Token inválido')


def load_user_from_token(session, token: str, secret: str) -> User:
    """Resolve a token to an active user reloaded from the database."""
    payload = decode_token(token, secret)
    try:
        user_id = int(payload.get('sub'))
    except (TypeError, ValueError):
        raise UnauthorizedError('Token inválido')

    user = user_service.get_by_id(session, user_id)
    if user is None or not user.is_active:
        raise UnauthorizedError('Usuario no encontrado o inactivo')
    return user


def authenticate(session, data: Dict[str, Any]) -> User:
    """
    Check credentials.

    Raises:
        ValidationError: missing username or password
        UnauthorizedError: unknown user, wrong password or inactive account
        ForbiddenError: account not approved yet
    """
    username = require_text(data, 'username', 'El usuario')
    password = data.get('password')
    if not password:
        raise ValidationError('La contraseña es requerida', field='password')

    user = user_service.get_by_username(session, username)
    if user is None or not user.check_password(password):
        logger.warning(f"Failed login for username '{username}'")
        raise UnauthorizedError('Credenciales inválidas')
    if not user.is_active:
        raise UnauthorizedError('Usuario inactivo')
    if not user.is_approved:
        raise ForbiddenError('Su cuenta está pendiente de aprobación por un administrador')

    logger.info(f"User logged in: id={user.id} username='{username}'")
    return user


def build_session_payload(session, user: User, token: Optional[str] = None) -> Dict[str, Any]:
    """{token, user, optic} as returned by login and profile endpoints."""
    optic = session.query(Optic).filter(Optic.id == user.optic_id).first() if user.optic_id else None
    payload = {
        'user': user.to_dict(),
        'optic': optic.to_dict() if optic else None,
    }
    if token is not None:
        payload['token'] = token
    return payload


def request_password_reset(session, data: Dict[str, Any], valid_minutes: int = 60) -> Optional[str]:
    """
    Create a reset token for the account with this email.

    Returns the token, or None when no active user has that email. Callers must
    not reveal which of the two happened.
    """
    email = validate_email(data.get('email'), required=True)
    user = user_service.get_by_email(session, email)
    if user is None or not user.is_active:
        logger.info("Password reset requested for unknown email")
        return None

    token = user_service.set_reset_token(session, user, valid_minutes)
    logger.info(f"Password reset token issued for user id={user.id}")
    return token


def reset_password(session, data: Dict[str, Any]) -> User:
    token = require_text(data, 'token', 'El token')
    password = validate_password(data.get('password'))

    user = user_service.get_by_valid_reset_token(session, token)
    if user is None:
        raise ValidationError('Token inválido o expirado', field='token')

    try:
        user.set_password(password)
        user.reset_token = None
        user.reset_token_expiry = None
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Password reset completed for user id={user.id}")
    return user
