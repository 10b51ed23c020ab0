"""
Pytest fixtures for checkout engine tests.

Provides test database setup, a stocked branch, and test client.
"""

from types import SimpleNamespace

import pytest

from checkout import create_app
from checkout.extensions import db
from checkout.models import (
    Branch,
    Brand,
    Business,
    CashRegister,
    Category,
    CategoryAggregate,
    PaymentMethod,
    Product,
    ProductStock,
    User,
)
from checkout.services.notification_service import set_purchase_emitter
from checkout.time_utils import month_bounds, utcnow
from checkout.validation import PaymentSplitInput, SaleInput, SaleLineInput


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'COMMIT_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
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


@pytest.fixture(scope='function')
def recorded_events(app):
    """Capture purchase events instead of logging them."""
    events = []
    set_purchase_emitter(app, lambda user_id, payload: events.append((user_id, payload)))
    yield events
    set_purchase_emitter(app, None)


@pytest.fixture(scope='function')
def monthly_total(db_session):
    """Read the current-month aggregate for one category in a scope."""
    def _total(scope, category_id, now=None):
        period_start = month_bounds(now or utcnow())[0].date()
        row = (
            db_session.query(CategoryAggregate)
            .filter_by(scope_key=scope.scope_key, category_id=category_id, period_start=period_start)
            .first()
        )
        return int(row.total_cents) if row else 0

    return _total


@pytest.fixture(scope='function')
def shop(db_session):
    """
    One business with two branches.

    Main branch stock: Malta x5 @ 10.00 (Drinks), Chips x10 @ 2.50 (Snacks),
    Bread x8 @ 1.00 (Snacks, VAT exempt). The second branch stocks Malta x5.
    """
    business = Business(name="Bodega Central", rif="J-12345678-9")
    db_session.add(business)
    db_session.flush()

    branch = Branch(business_id=business.id, country="VE", city="Caracas")
    other_branch = Branch(business_id=business.id, country="VE", city="Valencia")
    db_session.add_all([branch, other_branch])
    db_session.flush()

    register = CashRegister(business_id=business.id, branch_id=branch.id, description="Till 1")
    other_register = CashRegister(business_id=business.id, branch_id=other_branch.id, description="Till 2")
    drinks = Category(name="Drinks")
    snacks = Category(name="Snacks")
    polar = Brand(name="Polar")
    db_session.add_all([register, other_register, drinks, snacks, polar])
    db_session.flush()

    malta = Product(name="Malta", brand_id=polar.id, category_id=drinks.id)
    chips = Product(name="Chips", flavor="Salted", category_id=snacks.id)
    bread = Product(name="Bread", category_id=snacks.id, vat_exempt=True)
    db_session.add_all([malta, chips, bread])
    db_session.flush()

    malta_stock = ProductStock(branch_id=branch.id, product_id=malta.id, quantity=5,
                               sale_price_cents=1000, purchase_price_cents=600)
    chips_stock = ProductStock(branch_id=branch.id, product_id=chips.id, quantity=10,
                               sale_price_cents=250, purchase_price_cents=150)
    bread_stock = ProductStock(branch_id=branch.id, product_id=bread.id, quantity=8,
                               sale_price_cents=100, purchase_price_cents=70)
    other_malta_stock = ProductStock(branch_id=other_branch.id, product_id=malta.id, quantity=5,
                                     sale_price_cents=1000, purchase_price_cents=600)
    cash = PaymentMethod(name="Cash", currency="USD")
    card = PaymentMethod(name="Card", currency="USD")
    customer = User(name="Ana Perez", email="ana@example.com", dni="V-111")
    db_session.add_all([malta_stock, chips_stock, bread_stock, other_malta_stock, cash, card, customer])
    db_session.commit()

    return SimpleNamespace(
        business=business,
        branch=branch,
        other_branch=other_branch,
        register=register,
        other_register=other_register,
        drinks=drinks,
        snacks=snacks,
        malta=malta_stock,
        chips=chips_stock,
        bread=bread_stock,
        other_malta=other_malta_stock,
        cash=cash,
        card=card,
        customer=customer,
    )


@pytest.fixture(scope='function')
def make_sale_input(shop):
    """Build a SaleInput on the main register; lines are (stock, quantity[, unit_price_cents])."""

    def _make(lines, total, paid, payments=None, **kwargs):
        line_inputs = []
        for line in lines:
            stock, quantity = line[0], line[1]
            price = line[2] if len(line) > 2 else stock.sale_price_cents
            line_inputs.append(SaleLineInput(stock_id=stock.id, quantity=quantity, unit_price_cents=price))
        if payments is None:
            payments = [(shop.cash, paid)] if paid else []
        kwargs.setdefault("cash_register_id", shop.register.id)
        return SaleInput(
            total_amount_cents=total,
            amount_cancelled_cents=paid,
            lines=line_inputs,
            payments=[PaymentSplitInput(payment_method_id=m.id, amount_cancelled_cents=a) for m, a in payments],
            **kwargs,
        )

    return _make
