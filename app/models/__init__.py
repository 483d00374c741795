"""Models package - exports all SQLAlchemy models."""
# Tenancy and access
from app.models.optic import Optic
from app.models.user import User, UserRole
from app.models.registration_request import RegistrationRequest, RequestStatus

# Business Models
from app.models.client import Client
from app.models.product import Product
from app.models.sale import Sale, PRESCRIPTION_FIELDS, AXIS_FIELDS
from app.models.sale_item import SaleItem
from app.models.deletion_log import DeletionLog
from app.models.dashboard_config import DashboardConfig, DEFAULT_SECTIONS

__all__ = [
    # Tenancy
    'Optic', 'User', 'UserRole', 'RegistrationRequest', 'RequestStatus',
    # Business
    'Client', 'Product', 'Sale', 'SaleItem', 'PRESCRIPTION_FIELDS', 'AXIS_FIELDS',
    'DeletionLog', 'DashboardConfig', 'DEFAULT_SECTIONS',
]
