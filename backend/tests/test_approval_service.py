import pytest

from checkout.errors import NotFoundError
from checkout.models import CategoryAggregate
from checkout.models.aggregates import LEDGER_PURCHASES
from checkout.services import sales_service
from checkout.services.approval_service import approve_sale, with_vat
from checkout.services.category_totals_service import AggregateScope


@pytest.fixture
def mixed_sale(shop, db_session, make_sale_input):
    """Malta x2 (20.00, VAT applies) and Bread x3 (3.00, VAT exempt)."""
    return sales_service.create_sale(make_sale_input(
        [(shop.malta, 2), (shop.bread, 3)], total=2300, paid=2300, user_id=shop.customer.id,
    ))


def _purchase_rows(db_session):
    return db_session.query(CategoryAggregate).filter_by(ledger=LEDGER_PURCHASES).all()


@pytest.mark.parametrize("amount, rate_bps, expected", [
    (2000, 1600, 2320),
    (1, 1600, 1),
    (25, 1000, 28),
    (15, 1000, 17),
    (999, 0, 999),
])
def test_with_vat_rounds_half_up(amount, rate_bps, expected):
    assert with_vat(amount, rate_bps) == expected


def test_approval_records_purchases_with_vat(shop, db_session, mixed_sale, monthly_total):
    sale = approve_sale(shop.customer.id, mixed_sale.id, True)

    assert sale.client_approved is True
    assert sale.approved_at is not None
    assert sale.approved_by_user_id == shop.customer.id

    scope = AggregateScope.for_user(shop.customer.id)
    assert monthly_total(scope, shop.drinks.id) == 2320
    assert monthly_total(scope, shop.snacks.id) == 300


def test_vat_rate_comes_from_config(app, shop, db_session, mixed_sale, monkeypatch, monthly_total):
    monkeypatch.setitem(app.config, "VAT_RATE_BPS", 800)
    approve_sale(shop.customer.id, mixed_sale.id, True)

    assert monthly_total(AggregateScope.for_user(shop.customer.id), shop.drinks.id) == 2160


def test_repeat_approval_does_not_double_count(shop, db_session, mixed_sale, monthly_total):
    approve_sale(shop.customer.id, mixed_sale.id, True)
    approve_sale(shop.customer.id, mixed_sale.id, True)

    assert monthly_total(AggregateScope.for_user(shop.customer.id), shop.drinks.id) == 2320
    assert len(_purchase_rows(db_session)) == 2


def test_unapprove_clears_approval_but_keeps_ledger(shop, db_session, mixed_sale, monthly_total):
    approve_sale(shop.customer.id, mixed_sale.id, True)
    sale = approve_sale(shop.customer.id, mixed_sale.id, False)

    assert sale.client_approved is False
    assert sale.approved_at is None
    assert sale.approved_by_user_id is None
    assert monthly_total(AggregateScope.for_user(shop.customer.id), shop.drinks.id) == 2320


def test_approval_without_user_only_sets_flag(shop, db_session, mixed_sale):
    sale = approve_sale(None, mixed_sale.id, True)

    assert sale.client_approved is True
    assert sale.approved_by_user_id is None
    assert _purchase_rows(db_session) == []


def test_branch_sales_ledger_is_untouched(shop, db_session, mixed_sale, monthly_total):
    branch_scope = AggregateScope.for_branch(shop.business.id, shop.branch.id)
    before = monthly_total(branch_scope, shop.drinks.id)

    approve_sale(shop.customer.id, mixed_sale.id, True)

    assert monthly_total(branch_scope, shop.drinks.id) == before == 2000


def test_unknown_sale_or_user(shop, db_session, mixed_sale):
    with pytest.raises(NotFoundError):
        approve_sale(shop.customer.id, 99999, True)
    with pytest.raises(NotFoundError):
        approve_sale(99999, mixed_sale.id, True)
