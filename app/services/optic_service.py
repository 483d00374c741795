"""
Optic (tenant) service.

Optics are soft-deleted by deactivating them (is_active = false).
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func

from app.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.models import Optic
from app.services.access_scope import AccessScope
from app.services.deletion_log_service import log_deletion
from app.services.repository import apply_search
from app.utils.pagination import paginate_query
from app.utils.validators import clean_text, require_text, validate_email

logger = logging.getLogger(__name__)

SEARCH_COLUMNS = (Optic.name, Optic.email)


def _optic_fields(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    fields = {}
    if not partial or 'name' in data:
        fields['name'] = require_text(data, 'name', 'El nombre de la óptica')
    for name in ('address', 'phone'):
        if not partial or name in data:
            fields[name] = clean_text(data.get(name))
    if not partial or 'email' in data:
        fields['email'] = validate_email(data.get('email'))
    return fields


def _require_admin(scope: AccessScope) -> None:
    if not scope.is_admin:
        raise ForbiddenError('Se requieren permisos de administrador')


def get_all(session, scope: AccessScope, page: int = 1, limit: int = 10,
            search: Optional[str] = None) -> Tuple[List[Optic], int]:
    _require_admin(scope)
    query = session.query(Optic).filter(Optic.is_active.is_(True))
    query = apply_search(query, search, SEARCH_COLUMNS).order_by(Optic.name, Optic.id)
    return paginate_query(query, page, limit)


def get_by_id(session, optic_id: int, scope: AccessScope) -> Optic:
    """Admins read any active optic; users only their own."""
    optic = session.query(Optic).filter(Optic.id == optic_id, Optic.is_active.is_(True)).first()
    if optic is None:
        raise NotFoundError('Óptica no encontrada')
    scope.ensure_access(optic.id)
    return optic


def search(session, term: str, scope: AccessScope, limit: int = 20) -> List[Optic]:
    _require_admin(scope)
    query = apply_search(session.query(Optic).filter(Optic.is_active.is_(True)), term, SEARCH_COLUMNS)
    return query.order_by(Optic.name).limit(limit).all()


def create(session, data: Dict[str, Any], scope: AccessScope) -> Optic:
    _require_admin(scope)
    fields = _optic_fields(data)

    try:
        optic = Optic(**fields)
        session.add(optic)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Optic created: id={optic.id} '{optic.name}' by user {scope.user_id}")
    return optic


def update(session, optic_id: int, data: Dict[str, Any], scope: AccessScope) -> Optic:
    _require_admin(scope)
    fields = _optic_fields(data, partial=True)
    if not fields:
        raise ValidationError('No se proporcionaron campos para actualizar')

    try:
        optic = get_by_id(session, optic_id, scope)
        for name, value in fields.items():
            setattr(optic, name, value)
        session.commit()
    except Exception:
        session.rollback()
        raise

    return optic


def soft_delete(session, optic_id: int, scope: AccessScope, reason: Optional[str] = None) -> Dict[str, Any]:
    """Deactivate the optic and log its snapshot in one transaction."""
    _require_admin(scope)
    try:
        optic = get_by_id(session, optic_id, scope)
        snapshot = optic.to_dict()

        optic.is_active = False
        log_deletion(session, 'optics', optic.id, scope.user_id, snapshot, reason)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Optic deactivated: id={optic_id} by user {scope.user_id}")
    return snapshot


def find_or_create_active(session, name: str, address: Optional[str] = None, phone: Optional[str] = None,
                          email: Optional[str] = None) -> Optic:
    """
    Active optic with this name (case-insensitive), or a new one.

    Flushes but does not commit: callers own the transaction.
    """
    optic = session.query(Optic).filter(
        func.lower(Optic.name) == name.strip().lower(),
        Optic.is_active.is_(True),
    ).order_by(Optic.id).first()
    if optic is not None:
        return optic

    optic = Optic(name=name.strip(), address=address, phone=phone, email=email)
    session.add(optic)
    session.flush()
    logger.info(f"Optic created on approval: id={optic.id} '{optic.name}'")
    return optic
