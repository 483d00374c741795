"""Users repository: lookups, creation and password reset tokens."""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, or_

from app.exceptions import ConflictError
from app.models import User, UserRole

logger = logging.getLogger(__name__)


def get_by_id(session, user_id: int) -> Optional[User]:
    return session.query(User).filter(User.id == user_id).first()


def get_by_username(session, username: str) -> Optional[User]:
    return session.query(User).filter(User.username == username).first()


def get_by_email(session, email: str) -> Optional[User]:
    return session.query(User).filter(func.lower(User.email) == email.strip().lower()).first()


def find_conflicting_user(session, username: str, email: str) -> Optional[User]:
    """Existing user holding this username or email, if any."""
    return session.query(User).filter(
        or_(User.username == username, func.lower(User.email) == email.strip().lower())
    ).first()


def create_user(session, username: str, email: str, optic_id: Optional[int], password: str = None,
                password_hash: str = None, role: str = UserRole.USER.value,
                is_approved: bool = True) -> User:
    """
    Add a user to the session (flush, no commit).

    Pass either a plain password (hashed here) or an already computed hash.

    Raises:
        ConflictError: username or email already taken
    """
    if find_conflicting_user(session, username, email):
        raise ConflictError('El usuario o email ya está registrado')

    user = User(
        username=username,
        email=email.strip().lower(),
        optic_id=optic_id,
        role=role,
        is_approved=is_approved,
        is_active=True,
    )
    if password_hash:
        user.password = password_hash
    else:
        user.set_password(password)

    session.add(user)
    session.flush()
    logger.info(f"User created: id={user.id} username='{username}' optic_id={optic_id}")
    return user


def set_reset_token(session, user: User, valid_minutes: int = 60) -> str:
    """Generate a reset token for the user and commit it."""
    token = secrets.token_hex(32)
    user.reset_token = token
    user.reset_token_expiry = datetime.now(timezone.utc) + timedelta(minutes=valid_minutes)
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise
    return token


def get_by_valid_reset_token(session, token: str) -> Optional[User]:
    user = session.query(User).filter(User.reset_token == token).first()
    if user is None or user.reset_token_expiry is None:
        return None

    expiry = user.reset_token_expiry
    if expiry.tzinfo is None:
        # SQLite returns naive datetimes
        expiry = expiry.replace(tzinfo=timezone.utc)
    if expiry <= datetime.now(timezone.utc):
        return None
    return user
