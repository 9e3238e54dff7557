"""
Pytest fixtures for storefront backend tests.

Provides an in-memory application, a per-test clean database, account and
catalog fixtures, and bearer-token helpers for the test client.
"""

from datetime import timedelta

import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models import ROLE_SUPERADMIN
from storefront.services import auth_service, discount_service, order_service, product_service, session_service
from storefront.services import order_lifecycle_service as lifecycle
from storefront.time_utils import utcnow

# Cheap bcrypt cost keeps the suite fast; production uses the default.
TEST_ROUNDS = 4
TEST_PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOW_STOCK_THRESHOLD': 3,
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
    """Fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture
def admin(db_session):
    return auth_service.create_admin(
        name="Ops Admin", email="ops@shop.test", password=TEST_PASSWORD, rounds=TEST_ROUNDS
    )


@pytest.fixture
def other_admin(db_session):
    return auth_service.create_admin(
        name="Other Admin", email="other-ops@shop.test", password=TEST_PASSWORD, rounds=TEST_ROUNDS
    )


@pytest.fixture
def superadmin(db_session):
    return auth_service.create_admin(
        name="Root", email="root@shop.test", password=TEST_PASSWORD, role=ROLE_SUPERADMIN, rounds=TEST_ROUNDS
    )


@pytest.fixture
def shopper(db_session, admin):
    return auth_service.create_user(
        name="Sam Shopper", email="sam@shop.test", password=TEST_PASSWORD, admin_id=admin.id, rounds=TEST_ROUNDS
    )


@pytest.fixture
def other_shopper(db_session, admin):
    return auth_service.create_user(
        name="Alex Shopper", email="alex@shop.test", password=TEST_PASSWORD, admin_id=admin.id, rounds=TEST_ROUNDS
    )


@pytest.fixture
def make_product(db_session, admin):
    """Factory: make_product(name, price_cents, quantity) -> Product with opening stock."""
    def _make(name="Widget", price_cents=1000, quantity=10, owner=None):
        return product_service.create_product(
            admin_id=(owner or admin).id,
            name=name,
            price_cents=price_cents,
            initial_quantity=quantity,
        )
    return _make


@pytest.fixture
def product(make_product):
    """Stock 5 at 10.00."""
    return make_product("Canvas Tote", 1000, 5)


@pytest.fixture
def second_product(make_product):
    return make_product("Enamel Mug", 250, 20)


@pytest.fixture
def make_discount(db_session, admin):
    def _make(code="SAVE10", percentage=10, valid_till=None, **kwargs):
        return discount_service.create_discount(
            code=code,
            percentage=percentage,
            valid_till=valid_till or (utcnow() + timedelta(days=7)),
            admin_id=admin.id,
            **kwargs,
        )
    return _make


@pytest.fixture
def discount(make_discount):
    return make_discount()


@pytest.fixture
def shopper_principal(shopper):
    return session_service.principal_for(shopper)


@pytest.fixture
def admin_principal(admin):
    return session_service.principal_for(admin)


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def shopper_headers(shopper):
    _, token = session_service.create_session(shopper)
    return auth_headers(token)


@pytest.fixture
def other_shopper_headers(other_shopper):
    _, token = session_service.create_session(other_shopper)
    return auth_headers(token)


@pytest.fixture
def admin_headers(admin):
    _, token = session_service.create_session(admin)
    return auth_headers(token)


@pytest.fixture
def superadmin_headers(superadmin):
    _, token = session_service.create_session(superadmin)
    return auth_headers(token)


@pytest.fixture
def shipped_order(shopper, admin, product):
    """shopper's order of one `product`, moved through PROCESSING to SHIPPED."""
    order = order_service.create_order(
        user_id=shopper.id,
        items=[order_service.OrderLineRequest(product_id=product.id, quantity=1)],
    )
    lifecycle.transition_order(order.id, "PROCESSING", acting_principal_id=admin.id)
    return lifecycle.transition_order(order.id, "SHIPPED", acting_principal_id=admin.id)
