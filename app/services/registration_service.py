"""
Registration / approval workflow.

A visitor submits a registration request (desired user + optic). An admin
approves it, which creates or reuses the optic and creates the user, or
rejects it. Both transitions are terminal and happen once.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from werkzeug.security import generate_password_hash

from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import RegistrationRequest, RequestStatus, UserRole
from app.services import optic_service, user_service
from app.services.auth_service import validate_password
from app.utils.validators import clean_text, require_text, validate_email

logger = logging.getLogger(__name__)


def submit_registration(session, data: Dict[str, Any]) -> RegistrationRequest:
    """
    Store a pending registration request.

    Raises:
        ValidationError: missing/invalid username, email, password or optic_name
        ConflictError: username or email taken by a user or another pending request
    """
    username = require_text(data, 'username', 'El usuario')
    email = validate_email(data.get('email'), required=True)
    password = validate_password(data.get('password'))
    optic_name = require_text(data, 'optic_name', 'El nombre de la óptica')

    if user_service.find_conflicting_user(session, username, email):
        raise ConflictError('El usuario o email ya está registrado')

    pending = session.query(RegistrationRequest.id).filter(
        RegistrationRequest.status == RequestStatus.PENDING.value,
        or_(
            RegistrationRequest.username == username,
            func.lower(RegistrationRequest.email) == email,
        ),
    ).first()
    if pending:
        raise ConflictError('Ya existe una solicitud pendiente para ese usuario o email')

    try:
        request_row = RegistrationRequest(
            username=username,
            email=email,
            password=generate_password_hash(password, method='scrypt'),
            optic_name=optic_name,
            optic_address=clean_text(data.get('optic_address')),
            optic_phone=clean_text(data.get('optic_phone')),
            optic_email=validate_email(data.get('optic_email'), field='optic_email'),
            status=RequestStatus.PENDING.value,
        )
        session.add(request_row)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Registration request submitted: id={request_row.id} username='{username}'")
    return request_row


def get_registration_status(session, username: str) -> RegistrationRequest:
    """Latest request for this username."""
    request_row = session.query(RegistrationRequest).filter(
        RegistrationRequest.username == username
    ).order_by(RegistrationRequest.created_at.desc(), RegistrationRequest.id.desc()).first()
    if request_row is None:
        raise NotFoundError('No se encontró una solicitud para ese usuario')
    return request_row


def list_requests(session, status: Optional[str] = None) -> List[RegistrationRequest]:
    query = session.query(RegistrationRequest)
    if status:
        if status not in {s.value for s in RequestStatus}:
            raise ValidationError('Estado inválido', field='status')
        query = query.filter(RegistrationRequest.status == status)
    return query.order_by(RegistrationRequest.created_at.desc(), RegistrationRequest.id.desc()).all()


def _lock_pending(session, request_id: int) -> RegistrationRequest:
    request_row = session.query(RegistrationRequest).filter(
        RegistrationRequest.id == request_id
    ).with_for_update().populate_existing().first()

    if request_row is None:
        raise NotFoundError('Solicitud no encontrada')
    if not request_row.is_pending:
        raise ConflictError(f'La solicitud ya fue procesada ({request_row.status})')
    return request_row


def approve(session, request_id: int, reviewer_id: int, admin_notes: Optional[str] = None) -> RegistrationRequest:
    """
    Approve a pending request in one transaction.

    Steps:
    1. Lock the request row; it must still be pending
    2. Reject username/email collisions before creating anything
    3. Reuse the active optic with that name or create it
    4. Create the approved user bound to the optic
    5. Mark the request approved with reviewer and timestamp

    Raises:
        NotFoundError: unknown request
        ConflictError: request not pending, or username/email already taken
    """
    try:
        request_row = _lock_pending(session, request_id)

        if user_service.find_conflicting_user(session, request_row.username, request_row.email):
            raise ConflictError('El usuario o email ya está registrado')

        optic = optic_service.find_or_create_active(
            session,
            request_row.optic_name,
            address=request_row.optic_address,
            phone=request_row.optic_phone,
            email=request_row.optic_email,
        )
        user = user_service.create_user(
            session,
            username=request_row.username,
            email=request_row.email,
            optic_id=optic.id,
            password_hash=request_row.password,
            role=UserRole.USER.value,
            is_approved=True,
        )

        request_row.status = RequestStatus.APPROVED.value
        request_row.user_id = user.id
        request_row.optic_id = optic.id
        request_row.reviewed_by = reviewer_id
        request_row.reviewed_at = datetime.now(timezone.utc)
        request_row.admin_notes = clean_text(admin_notes)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Registration request approved: id={request_id} by user {reviewer_id}")
    return request_row


def reject(session, request_id: int, reviewer_id: int, admin_notes: Optional[str] = None) -> RegistrationRequest:
    """Mark a pending request rejected. Creates nothing."""
    try:
        request_row = _lock_pending(session, request_id)
        request_row.status = RequestStatus.REJECTED.value
        request_row.reviewed_by = reviewer_id
        request_row.reviewed_at = datetime.now(timezone.utc)
        request_row.admin_notes = clean_text(admin_notes)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Registration request rejected: id={request_id} by user {reviewer_id}")
    return request_row
