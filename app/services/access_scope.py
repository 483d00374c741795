"""
Access scope resolution.

Single place that turns the authenticated caller (role + optic) into the
tenant filter applied by every repository.
"""
from typing import Optional
from app.exceptions import ForbiddenError, ValidationError


class AccessScope:
    """
    Resolved caller context.

    optic_id is the tenant filter for reads and writes; it is None for admins,
    who see every optic. home_optic_id is the caller's own optic regardless of role.
    """

    def __init__(self, user_id: Optional[int], home_optic_id: Optional[int], is_admin: bool = False):
        self.user_id = user_id
        self.home_optic_id = home_optic_id
        self.is_admin = is_admin

    @property
    def optic_id(self) -> Optional[int]:
        return None if self.is_admin else self.home_optic_id

    def apply(self, query, optic_column):
        """Add the tenant predicate to a query (no-op for admins)."""
        if self.is_admin:
            return query
        return query.filter(optic_column == self.home_optic_id)

    def can_access(self, optic_id: Optional[int]) -> bool:
        return self.is_admin or (optic_id is not None and optic_id == self.home_optic_id)

    def ensure_access(self, optic_id: Optional[int]) -> None:
        if not self.can_access(optic_id):
            raise ForbiddenError('No tiene acceso a recursos de otra óptica')

    def target_optic_id(self, requested=None) -> int:
        """
        Optic a new record is written into.

        Admins may target any optic through the payload and fall back to their
        own; ordinary users always write into their own optic.
        """
        if self.is_admin and requested not in (None, ''):
            try:
                return int(requested)
            except (TypeError, ValueError):
                raise ValidationError('optic_id inválido', field='optic_id')

        if self.home_optic_id is None:
            raise ValidationError('El usuario no tiene una óptica asignada', field='optic_id')
        return self.home_optic_id

    def __repr__(self):
        return f"<AccessScope(user_id={self.user_id}, optic_id={self.optic_id}, admin={self.is_admin})>"


def resolve_scope(user) -> AccessScope:
    """Build the scope for a loaded User."""
    if user is None:
        return AccessScope(user_id=None, home_optic_id=None, is_admin=False)
    return AccessScope(user_id=user.id, home_optic_id=user.optic_id, is_admin=user.is_admin)
