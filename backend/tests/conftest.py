"""
Pytest fixtures for the sales desk backend tests.

Provides the application on an in-memory database, a per-test table wipe,
operators for every role, a seller, and factories for products and sales.
"""

from decimal import Decimal

import pytest

from salesdesk import create_app
from salesdesk.extensions import db
from salesdesk.models import (
    Product, Seller, User, ROLE_MANAGER, ROLE_SALESPERSON, ROLE_CASHIER,
)
from salesdesk.services import payment_service, sales_service, units_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'UNITS_CONFIG_PATH': None,
    })

    with app.app_context():
        db.create_all()
        yield app
        app.extensions["sales_board"].close()
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

        # Bulk deletes bypass the ORM events the board subscribes to
        app.extensions["sales_board"].invalidate()
        units_service.init_app(app)
        app.config["SALE_COMPLETION_ATOMIC"] = True

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def legacy_completion(app):
    """Per-item committed stock decrements (no rollback of earlier lines)."""
    app.config["SALE_COMPLETION_ATOMIC"] = False
    yield
    app.config["SALE_COMPLETION_ATOMIC"] = True


def _user(db_session, name, username, role, active=True):
    user = User(name=name, username=username, role=role, active=active, password_hash="x")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def manager(db_session):
    return _user(db_session, "Marta Manager", "manager", ROLE_MANAGER)


@pytest.fixture(scope='function')
def salesperson(db_session):
    return _user(db_session, "Sam Sales", "sales", ROLE_SALESPERSON)


@pytest.fixture(scope='function')
def cashier(db_session):
    return _user(db_session, "Carla Cashier", "cashier", ROLE_CASHIER)


@pytest.fixture(scope='function')
def seller(db_session):
    seller = Seller(name="Paulo Seller", active=True)
    db_session.add(seller)
    db_session.commit()
    return seller


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product("Product A", price="10.00", stock=5)."""
    counter = {"n": 0}

    def _make(name, price="10.00", stock=5, **kwargs):
        counter["n"] += 1
        product = Product(
            code=kwargs.pop("code", f"P{counter['n']:03d}"),
            name=name,
            price=Decimal(str(price)),
            stock=stock,
            **kwargs,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_sale(db_session, salesperson, seller):
    """
    Factory: save a sale from (product, quantity) pairs.

    Unless as_budget is set, the whole grand total is paid in cash so the
    sale is saved PENDING.
    """
    def _make(lines, discount=None, token=None, as_budget=False, **payload):
        payload = dict(payload)
        payload["items"] = [
            {"product_id": product.id, "quantity": quantity}
            for product, quantity in lines
        ]
        if discount is not None:
            payload["discount"] = discount
            payload["discount_token"] = token
        cart, _ = sales_service.build_cart(payload)
        if not as_budget:
            payment_service.fill_remaining(cart, payment_service.METHOD_CASH)
        return sales_service.save_sale(
            cart,
            seller_id=salesperson.id,
            salesperson_id=seller.id,
            as_budget=as_budget,
        )

    return _make


@pytest.fixture(scope='function')
def stock_of(db_session):
    """Current stored stock of a product, bypassing the identity map."""
    def _stock(product):
        return db_session.query(Product.stock).filter(Product.id == product.id).scalar()

    return _stock
