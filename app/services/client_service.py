"""
Client service - tenant-scoped CRUD with soft delete.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from app.exceptions import ConflictError, ValidationError
from app.models import Client
from app.services.access_scope import AccessScope
from app.services.deletion_log_service import log_deletion
from app.services.repository import get_scoped, live_query, apply_search, resolve_target_optic
from app.utils.pagination import paginate_query
from app.utils.validators import clean_text, require_text, validate_email, parse_date

logger = logging.getLogger(__name__)

SEARCH_COLUMNS = (Client.first_name, Client.last_name, Client.dni, Client.email, Client.phone)
TEXT_FIELDS = ('dni', 'last_name', 'phone', 'address', 'notes')
DNI_INDEX = 'uq_clients_optic_dni'


def _client_fields(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validate and normalize client input. With partial=True only supplied keys are returned."""
    fields = {}

    if not partial or 'first_name' in data:
        fields['first_name'] = require_text(data, 'first_name', 'El nombre')
    for name in TEXT_FIELDS:
        if not partial or name in data:
            fields[name] = clean_text(data.get(name))
    if not partial or 'email' in data:
        fields['email'] = validate_email(data.get('email'))
    if not partial or 'birth_date' in data:
        fields['birth_date'] = parse_date(data.get('birth_date'), 'birth_date')

    return fields


def _is_dni_conflict(error: IntegrityError) -> bool:
    """True when the violated constraint is the per-optic dni index."""
    message = str(error.orig)
    return DNI_INDEX in message or 'clients.dni' in message


def _ensure_unique_dni(session, optic_id: int, dni: Optional[str], exclude_id: Optional[int] = None) -> None:
    if not dni:
        return
    query = session.query(Client.id).filter(
        Client.optic_id == optic_id,
        Client.dni == dni,
        Client.deleted_at.is_(None),
    )
    if exclude_id:
        query = query.filter(Client.id != exclude_id)
    if query.first():
        raise ConflictError('Ya existe un cliente con ese DNI', payload={'field': 'dni'})


def get_all(session, scope: AccessScope, page: int = 1, limit: int = 10,
            search: Optional[str] = None) -> Tuple[List[Client], int]:
    query = apply_search(live_query(session, Client, scope), search, SEARCH_COLUMNS)
    query = query.order_by(Client.created_at.desc(), Client.id.desc())
    return paginate_query(query, page, limit)


def get_by_id(session, client_id: int, scope: AccessScope) -> Client:
    return get_scoped(session, Client, client_id, scope, 'Cliente no encontrado')


def search(session, term: str, scope: AccessScope, limit: int = 20) -> List[Client]:
    query = apply_search(live_query(session, Client, scope), term, SEARCH_COLUMNS)
    return query.order_by(Client.first_name, Client.last_name).limit(limit).all()


def create(session, data: Dict[str, Any], scope: AccessScope) -> Client:
    """
    Create a client in the caller's optic (admins may target another optic).

    Raises:
        ValidationError: missing first_name or malformed fields
        ConflictError: dni already used by a live client of the same optic
    """
    fields = _client_fields(data)

    try:
        optic_id = resolve_target_optic(session, scope, data.get('optic_id'))
        _ensure_unique_dni(session, optic_id, fields.get('dni'))
        client = Client(optic_id=optic_id, **fields)
        session.add(client)
        session.commit()
    except IntegrityError as e:
        session.rollback()
        if _is_dni_conflict(e):
            raise ConflictError('Ya existe un cliente con ese DNI', payload={'field': 'dni'})
        raise
    except Exception:
        session.rollback()
        raise

    logger.info(f"Client created: id={client.id} optic_id={optic_id}")
    return client


def update(session, client_id: int, data: Dict[str, Any], scope: AccessScope) -> Client:
    fields = _client_fields(data, partial=True)
    if not fields:
        raise ValidationError('No se proporcionaron campos para actualizar')

    try:
        client = get_by_id(session, client_id, scope)
        if 'dni' in fields:
            _ensure_unique_dni(session, client.optic_id, fields['dni'], exclude_id=client.id)
        for name, value in fields.items():
            setattr(client, name, value)
        session.commit()
    except IntegrityError as e:
        session.rollback()
        if _is_dni_conflict(e):
            raise ConflictError('Ya existe otro cliente con ese DNI', payload={'field': 'dni'})
        raise
    except Exception:
        session.rollback()
        raise

    return client


def soft_delete(session, client_id: int, scope: AccessScope, reason: Optional[str] = None) -> Dict[str, Any]:
    """Mark the client deleted and log its snapshot in one transaction."""
    try:
        client = get_by_id(session, client_id, scope)
        snapshot = client.to_dict()

        client.deleted_at = datetime.now(timezone.utc)
        log_deletion(session, 'clients', client.id, scope.user_id, snapshot, reason)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Client soft-deleted: id={client_id} by user {scope.user_id}")
    return snapshot
