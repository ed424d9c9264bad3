"""
Pytest fixtures for pharmaledger backend tests.

Provides an in-memory database shared by the whole run, per-test table
cleanup, actors for each role, and a test client with bearer sessions.
"""

import pytest

from pharmaledger import create_app
from pharmaledger.extensions import db
from pharmaledger.permissions import ROLE_ADMIN, ROLE_CASHIER, ROLE_WAREHOUSE
from pharmaledger.services import branch_service, products_service, session_service, user_service
from pharmaledger.services.live_query_service import hub
from pharmaledger.services.permission_service import Actor


BRIDGE_SECRET = "test-bridge-secret"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'TX_RETRY_BACKOFF_SECONDS': 0,
        'IDENTITY_BRIDGE_SECRET': BRIDGE_SECRET,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Empty every table before each test."""
    db.session.remove()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    hub.clear()

    yield db.session

    db.session.rollback()
    hub.clear()


@pytest.fixture(scope='function')
def admin():
    return Actor(uid="admin-1", display_name="Admin", role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def branch(admin):
    """Main branch (first branch created)."""
    return branch_service.create_branch(name="Centro", address="Av. Juárez 10", actor=admin)


@pytest.fixture(scope='function')
def other_branch(admin, branch):
    return branch_service.create_branch(name="Norte", address="Calle 5 de Mayo 200", actor=admin)


@pytest.fixture(scope='function')
def cashier(branch):
    return Actor(
        uid="cashier-1",
        display_name="Cajera Uno",
        role=ROLE_CASHIER,
        branch_roles={branch.id: ROLE_CASHIER},
        active_branch_id=branch.id,
    )


@pytest.fixture(scope='function')
def warehouse(branch):
    return Actor(
        uid="warehouse-1",
        display_name="Almacén",
        role=ROLE_WAREHOUSE,
        branch_roles={branch.id: ROLE_WAREHOUSE},
        active_branch_id=branch.id,
    )


def make_product(admin, **overrides) -> dict:
    patch = {
        "commercial_name": "Paracetamol 500mg",
        "generic_name": "Paracetamol",
        "category": "Analgésicos",
        "selling_price_cents": 2500,
        "cost_price_cents": 1200,
        "current_stock": 10,
        "min_stock": 2,
    }
    patch.update(overrides)
    return products_service.add_product(patch, admin)


@pytest.fixture(scope='function')
def product(admin, branch):
    return make_product(admin, barcode="7501000000017")


@pytest.fixture(scope='function')
def second_product(admin, branch):
    return make_product(
        admin,
        barcode="7501000000024",
        commercial_name="Ibuprofeno 400mg",
        generic_name="Ibuprofeno",
        selling_price_cents=4000,
        current_stock=5,
    )


# =============================================================================
# HTTP sessions
# =============================================================================

def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(branch):
    user_service.create_user(uid="admin-1", display_name="Admin", role=ROLE_ADMIN)
    _, token = session_service.create_session("admin-1", branch.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def cashier_headers(branch):
    user_service.create_user(uid="cashier-1", display_name="Cajera Uno", role=ROLE_CASHIER)
    user_service.assign_branch("cashier-1", branch.id, ROLE_CASHIER)
    _, token = session_service.create_session("cashier-1", branch.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def warehouse_headers(branch):
    user_service.create_user(uid="warehouse-1", display_name="Almacén", role=ROLE_WAREHOUSE)
    user_service.assign_branch("warehouse-1", branch.id, ROLE_WAREHOUSE)
    _, token = session_service.create_session("warehouse-1", branch.id)
    return auth_headers(token)
