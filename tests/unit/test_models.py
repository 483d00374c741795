"""
Unit tests for SQLAlchemy models (no database round trip).
"""

import json
from decimal import Decimal

from app.models import (
    User, UserRole, Client, Product, Sale, SaleItem, DeletionLog, DashboardConfig,
    DEFAULT_SECTIONS, PRESCRIPTION_FIELDS, RegistrationRequest, RequestStatus,
)


class TestUserModel:
    """Tests for User model."""

    def test_password_is_hashed(self):
        """Password is stored as a hash and verified against it."""
        user = User(username='ana', email='ana@test.com')
        user.set_password('secreta123')

        assert user.password != 'secreta123'
        assert user.password.startswith('scrypt:')
        assert user.check_password('secreta123') is True
        assert user.check_password('otra') is False

    def test_check_password_without_hash(self):
        user = User(username='ana', email='ana@test.com')
        assert user.check_password('anything') is False

    def test_is_admin(self):
        assert User(role=UserRole.ADMIN.value).is_admin is True
        assert User(role=UserRole.USER.value).is_admin is False

    def test_to_dict_never_exposes_password(self):
        user = User(username='ana', email='ana@test.com')
        user.set_password('secreta123')
        data = user.to_dict()

        assert 'password' not in data
        assert 'reset_token' not in data


class TestClientModel:

    def test_full_name(self):
        assert Client(first_name='Ana', last_name='García').full_name == 'Ana García'
        assert Client(first_name='Ana').full_name == 'Ana'


class TestSaleModel:
    """Display fields of sales and items."""

    def test_client_name_falls_back_to_unregistered_name(self):
        sale = Sale(unregistered_client_name='Juan Pérez')
        assert sale.client_name == 'Juan Pérez'

    def test_client_name_default(self):
        assert Sale().client_name == 'Cliente no registrado'

    def test_client_name_prefers_registered_client(self):
        sale = Sale(client=Client(first_name='Ana', last_name='García'), unregistered_client_name='X')
        assert sale.client_name == 'Ana García'

    def test_item_product_name(self):
        assert SaleItem(product=Product(name='Lens X')).product_name == 'Lens X'
        assert SaleItem(unregistered_product_name='Reparación').product_name == 'Reparación'

    def test_prescription_dict(self):
        sale = Sale(od_esf=Decimal('-1.25'), od_eje=90, oi_add=Decimal('2.00'))
        data = sale.prescription_dict()

        assert set(data) == set(PRESCRIPTION_FIELDS)
        assert data['od_esf'] == -1.25
        assert data['od_eje'] == 90
        assert data['oi_add'] == 2.0
        assert data['oi_cil'] is None


class TestDeletionLogModel:

    def test_snapshot_is_decoded(self):
        log = DeletionLog(table_name='clients', record_id=1, deleted_data=json.dumps({'first_name': 'Ana'}))
        assert log.snapshot == {'first_name': 'Ana'}


class TestDashboardConfigModel:

    def test_sections_default_when_empty(self):
        assert DashboardConfig().sections == DEFAULT_SECTIONS

    def test_sections_from_json(self):
        config = DashboardConfig(sections_visible=json.dumps({'topProducts': False}))
        assert config.sections == {'topProducts': False}


class TestRegistrationRequestModel:

    def test_is_pending(self):
        assert RegistrationRequest(status=RequestStatus.PENDING.value).is_pending is True
        assert RegistrationRequest(status=RequestStatus.APPROVED.value).is_pending is False
