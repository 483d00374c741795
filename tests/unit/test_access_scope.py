"""
Unit tests for access scope resolution.
"""

import pytest

from app.exceptions import ForbiddenError, ValidationError
from app.models import User, UserRole
from app.services.access_scope import AccessScope, resolve_scope


class TestResolveScope:

    def test_user_is_filtered_by_own_optic(self):
        scope = resolve_scope(User(id=5, optic_id=3, role=UserRole.USER.value))

        assert scope.user_id == 5
        assert scope.optic_id == 3
        assert scope.is_admin is False

    def test_admin_has_no_optic_filter(self):
        scope = resolve_scope(User(id=1, optic_id=3, role=UserRole.ADMIN.value))

        assert scope.optic_id is None
        assert scope.home_optic_id == 3
        assert scope.is_admin is True

    def test_anonymous(self):
        scope = resolve_scope(None)
        assert scope.user_id is None
        assert scope.can_access(1) is False


class TestAccessChecks:

    def test_user_can_only_access_own_optic(self):
        scope = AccessScope(user_id=5, home_optic_id=3)

        assert scope.can_access(3) is True
        assert scope.can_access(4) is False
        with pytest.raises(ForbiddenError):
            scope.ensure_access(4)

    def test_admin_can_access_any_optic(self):
        scope = AccessScope(user_id=1, home_optic_id=3, is_admin=True)
        scope.ensure_access(99)


class TestTargetOptic:

    def test_user_always_writes_into_own_optic(self):
        scope = AccessScope(user_id=5, home_optic_id=3)
        assert scope.target_optic_id(requested=99) == 3

    def test_admin_may_target_payload_optic(self):
        scope = AccessScope(user_id=1, home_optic_id=3, is_admin=True)
        assert scope.target_optic_id(requested='8') == 8
        assert scope.target_optic_id() == 3

    def test_admin_with_invalid_optic_id(self):
        scope = AccessScope(user_id=1, home_optic_id=3, is_admin=True)
        with pytest.raises(ValidationError):
            scope.target_optic_id(requested='abc')

    def test_user_without_optic(self):
        with pytest.raises(ValidationError):
            AccessScope(user_id=5, home_optic_id=None).target_optic_id()
