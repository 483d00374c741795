"""Shared helpers for the tenant-scoped entity services."""
from typing import Iterable, Optional

from sqlalchemy import or_

from app.exceptions import NotFoundError, ValidationError
from app.models import Optic
from app.services.access_scope import AccessScope


def get_scoped(session, model, entity_id: int, scope: AccessScope,
               not_found_message: str = 'Recurso no encontrado', lock: bool = False):
    """
    Load a live (not soft-deleted) row and enforce tenant ownership.

    Raises:
        NotFoundError: row absent or soft-deleted
        ForbiddenError: row belongs to another optic and caller is not admin
    """
    query = session.query(model).filter(model.id == entity_id)
    if hasattr(model, 'deleted_at'):
        query = query.filter(model.deleted_at.is_(None))
    if lock:
        query = query.with_for_update()

    entity = query.first()
    if entity is None:
        raise NotFoundError(not_found_message)

    scope.ensure_access(entity.optic_id)
    return entity


def live_query(session, model, scope: AccessScope):
    """Non-deleted rows visible to the scope."""
    query = session.query(model).filter(model.deleted_at.is_(None))
    return scope.apply(query, model.optic_id)


def search_condition(term: Optional[str], columns: Iterable):
    """Case-insensitive substring match over the given columns, or None."""
    term = (term or '').strip()
    if not term:
        return None
    pattern = f'%{term}%'
    return or_(*[column.ilike(pattern) for column in columns])


def apply_search(query, term: Optional[str], columns: Iterable):
    condition = search_condition(term, columns)
    if condition is None:
        return query
    return query.filter(condition)


def resolve_target_optic(session, scope: AccessScope, requested=None) -> int:
    """
    Optic id a new record is written into, checked against live optics.

    Raises:
        ValidationError: the optic does not exist or was deactivated
    """
    optic_id = scope.target_optic_id(requested)
    exists = session.query(Optic.id).filter(
        Optic.id == optic_id,
        Optic.is_active.is_(True),
    ).first()
    if not exists:
        raise ValidationError('optic_id inválido', field='optic_id')
    return optic_id
