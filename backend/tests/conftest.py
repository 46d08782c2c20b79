"""
Pytest fixtures for back-office engine tests.

Provides an in-memory database, per-test wipe, the test client, and small
factories for users, categories, products, lots and accounts.
"""

import pytest
from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import User, ProductCategory, Product
from backoffice.models.catalog import COMMISSION_PERCENTAGE
from backoffice.services import inventory_service, ledger_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DRAWER_FLOOR_AT_ZERO': True,
        'AUTHORIZER': None,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        app.config['DRAWER_FLOOR_AT_ZERO'] = True
        app.config['AUTHORIZER'] = None


@pytest.fixture(scope='function')
def make_user(db_session):
    counter = {'n': 0}

    def _make(email=None, name=None, is_active=True):
        counter['n'] += 1
        user = User(
            email=email or f"user{counter['n']}@backoffice.local",
            name=name or f"User {counter['n']}",
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture(scope='function')
def cashier(make_user):
    return make_user(email="cashier@backoffice.local", name="Cashier")


@pytest.fixture(scope='function')
def make_category(db_session):
    def _make(name="General", is_startup=False, commission_type=None, commission_value=None):
        category = ProductCategory(
            name=name,
            is_startup=is_startup,
            startup_name=name if is_startup else None,
            commission_type=commission_type,
            commission_value=commission_value,
        )
        db_session.add(category)
        db_session.commit()
        return category

    return _make


@pytest.fixture(scope='function')
def make_product(db_session):
    def _make(name="Widget", sell_price_cents=250, categories=()):
        product = Product(name=name, sell_price_cents=sell_price_cents, stock=0)
        product.categories = list(categories)
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def receive():
    """Receive a purchase lot through the inventory service."""
    def _receive(product, quantity, unit_cost_cents):
        return inventory_service.receive_lot(product.id, quantity, unit_cost_cents)

    return _receive


@pytest.fixture(scope='function')
def accounts(db_session):
    """Provisioned standard accounts keyed by name."""
    return ledger_service.ensure_standard_accounts()


@pytest.fixture(scope='function')
def startup_setup(make_category, make_product, receive, accounts):
    """
    Startup category (20% commission) with a linked partner account and a
    product with one lot: 10 units at 300 cents.
    """
    category = make_category(
        name="Acme Crafts",
        is_startup=True,
        commission_type=COMMISSION_PERCENTAGE,
        commission_value=20,
    )
    partner = ledger_service.create_partner_account(category.id, "startup_acme", "Acme Crafts")
    product = make_product(name="Acme Mug", sell_price_cents=1000, categories=[category])
    receive(product, 10, 300)
    return {"category": category, "partner": partner, "product": product}


@pytest.fixture(scope='function')
def cashier_headers(cashier):
    """Identity headers for the cashier."""
    return {'X-Actor-Id': str(cashier.id)}
