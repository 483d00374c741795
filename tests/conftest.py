import os
import tempfile
import uuid
from decimal import Decimal

import pytest

# Use a throwaway SQLite file unless a database is provided (e.g. PostgreSQL in CI)
_TEST_DB_DIR = tempfile.mkdtemp(prefix='optica-tests-')
os.environ.setdefault('DATABASE_URL', 'sqlite:///' + os.path.join(_TEST_DB_DIR, 'optica_test.db'))
os.environ.setdefault('FLASK_ENV', 'development')
os.environ.setdefault('JWT_SECRET', 'test-jwt-secret')
os.environ.setdefault('DB_CONNECT_RETRIES', '1')
os.environ.setdefault('DB_CONNECT_RETRY_DELAY', '0')

from app import create_app
from app.database import get_session
from app.models import Optic, User, UserRole, Client, Product
from app.services.access_scope import AccessScope
from app.services.auth_service import issue_token


def _suffix():
    return str(uuid.uuid4())[:8]


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.Config')
    app.config['TESTING'] = True
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session for testing."""
    session = get_session()
    yield session
    session.rollback()
    session.remove()


def _make_optic(session, name=None):
    optic = Optic(name=name or f'Óptica Test {_suffix()}', is_active=True)
    session.add(optic)
    session.commit()
    return optic.id


def _make_user(session, optic_id, role=UserRole.USER.value, is_approved=True, password='password123'):
    suffix = _suffix()
    user = User(
        username=f'user-{suffix}',
        email=f'user-{suffix}@test.com',
        optic_id=optic_id,
        role=role,
        is_approved=is_approved,
        is_active=True,
    )
    user.set_password(password)
    session.add(user)
    session.commit()
    return user.id


@pytest.fixture(scope='function')
def optic1(session):
    """First test optic (id)."""
    return _make_optic(session)


@pytest.fixture(scope='function')
def optic2(session):
    """Second test optic for isolation tests (id)."""
    return _make_optic(session)


@pytest.fixture(scope='function')
def user1(session, optic1):
    """Approved user of optic1 (id)."""
    return _make_user(session, optic1)


@pytest.fixture(scope='function')
def user2(session, optic2):
    """Approved user of optic2 (id)."""
    return _make_user(session, optic2)


@pytest.fixture(scope='function')
def admin_user(session, optic1):
    """Admin whose home optic is optic1 (id)."""
    return _make_user(session, optic1, role=UserRole.ADMIN.value)


@pytest.fixture(scope='function')
def scope1(user1, optic1):
    return AccessScope(user_id=user1, home_optic_id=optic1, is_admin=False)


@pytest.fixture(scope='function')
def scope2(user2, optic2):
    return AccessScope(user_id=user2, home_optic_id=optic2, is_admin=False)


@pytest.fixture(scope='function')
def admin_scope(admin_user, optic1):
    return AccessScope(user_id=admin_user, home_optic_id=optic1, is_admin=True)


def _headers_for(app, session, user_id):
    user = session.get(User, user_id)
    token = issue_token(user, app.config['JWT_SECRET'])
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def auth_headers1(app, session, user1):
    return _headers_for(app, session, user1)


@pytest.fixture(scope='function')
def auth_headers2(app, session, user2):
    return _headers_for(app, session, user2)


@pytest.fixture(scope='function')
def admin_headers(app, session, admin_user):
    return _headers_for(app, session, admin_user)


@pytest.fixture(scope='function')
def make_product(session):
    """Factory: make_product(optic_id, stock=10, price='50.00', name=None) -> id."""
    def _make(optic_id, stock=10, price='50.00', name=None):
        product = Product(
            optic_id=optic_id,
            name=name or f'Producto {_suffix()}',
            brand='Ray-Ban',
            price=Decimal(price),
            stock_quantity=stock,
        )
        session.add(product)
        session.commit()
        return product.id
    return _make


@pytest.fixture(scope='function')
def make_client(session):
    """Factory: make_client(optic_id, first_name='Ana', dni=None) -> id."""
    def _make(optic_id, first_name='Ana', last_name='García', dni=None):
        client = Client(optic_id=optic_id, first_name=first_name, last_name=last_name, dni=dni)
        session.add(client)
        session.commit()
        return client.id
    return _make


@pytest.fixture(scope='function')
def stock_of(session):
    """stock_of(product_id) -> current stock read straight from the database."""
    def _stock(product_id):
        return session.query(Product.stock_quantity).filter(Product.id == product_id).scalar()
    return _stock
