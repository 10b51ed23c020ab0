from datetime import timedelta

import pytest

from checkout.errors import InvalidRequestError, NotFoundError
from checkout.models import User
from checkout.models.aggregates import LEDGER_PURCHASES, LEDGER_SALES
from checkout.services import reporting_service, sales_service
from checkout.services.approval_service import approve_sale
from checkout.time_utils import utcnow


@pytest.fixture
def three_sales(shop, db_session, make_sale_input):
    """One paid, one pending (expires tomorrow), one pending that expired yesterday."""
    now = utcnow()
    paid = sales_service.create_sale(make_sale_input(
        [(shop.malta, 3)], total=3000, paid=3000, user_id=shop.customer.id,
    ))
    pending = sales_service.create_sale(make_sale_input(
        [(shop.chips, 8)], total=2000, paid=500, user_id=shop.customer.id,
        expired_at=now + timedelta(days=1),
    ))
    expired = sales_service.create_sale(make_sale_input(
        [(shop.bread, 5, 200)], total=1000, paid=200, client_dni="V-999",
        expired_at=now - timedelta(days=1),
    ))
    return paid, pending, expired


def test_summary_partitions_pending_and_expired(shop, db_session, three_sales):
    summary = reporting_service.sale_summary(branch_id=shop.branch.id)

    assert summary == {
        "totalPurchases": 3,
        "completed": 1,
        "pending": 1,
        "expired": 1,
        "totalAmount": 6000,
        "completedAmount": 3000,
        "pendingAmount": 1500,
        "expiredAmount": 800,
    }


def test_summary_by_user(shop, db_session, three_sales):
    summary = reporting_service.sale_summary(user_id=shop.customer.id)

    assert summary["totalPurchases"] == 2
    assert summary["expired"] == 0
    assert summary["pendingAmount"] == 1500


def test_summary_of_empty_scope(shop, db_session):
    summary = reporting_service.sale_summary(business_id=shop.business.id)
    assert summary["totalPurchases"] == 0
    assert summary["totalAmount"] == 0


def test_summary_requires_a_scope(shop, db_session):
    with pytest.raises(InvalidRequestError):
        reporting_service.sale_summary()


def test_last_purchase_for_user(shop, db_session, three_sales):
    _, pending, _ = three_sales
    assert reporting_service.last_purchase_for_user(shop.customer.id).id == pending.id

    with pytest.raises(NotFoundError):
        reporting_service.last_purchase_for_user(None)

    stranger = User(name="No Purchases")
    db_session.add(stranger)
    db_session.commit()
    with pytest.raises(NotFoundError):
        reporting_service.last_purchase_for_user(stranger.id)


def test_last_sale_for_scope(shop, db_session, three_sales, make_sale_input):
    _, _, expired = three_sales
    other = sales_service.create_sale(make_sale_input(
        [(shop.other_malta, 1)], total=1000, paid=1000, cash_register_id=shop.other_register.id,
    ))

    assert reporting_service.last_sale_for_scope(business_id=shop.business.id).id == other.id
    # branch takes precedence over business
    assert reporting_service.last_sale_for_scope(business_id=shop.business.id, branch_id=shop.branch.id).id == expired.id

    with pytest.raises(InvalidRequestError):
        reporting_service.last_sale_for_scope()


def test_last_sale_for_empty_branch(shop, db_session):
    with pytest.raises(NotFoundError):
        reporting_service.last_sale_for_scope(branch_id=shop.branch.id)


def test_category_totals_for_year(shop, db_session, three_sales):
    paid, _, _ = three_sales
    approve_sale(shop.customer.id, paid.id, True)
    month_index = utcnow().month - 1
    year = utcnow().year

    sales_months = reporting_service.category_totals_for_year(LEDGER_SALES, year, branch_id=shop.branch.id)
    assert sales_months[month_index]["categories"] == [
        {"category_id": shop.drinks.id, "category": "Drinks", "total_cents": 3000},
        {"category_id": shop.snacks.id, "category": "Snacks", "total_cents": 3000},
    ]

    purchase_months = reporting_service.category_totals_for_year(LEDGER_PURCHASES, year, user_id=shop.customer.id)
    assert purchase_months[month_index]["categories"] == [
        {"category_id": shop.drinks.id, "category": "Drinks", "total_cents": 3480},
    ]


def test_category_totals_validation(shop, db_session):
    with pytest.raises(InvalidRequestError):
        reporting_service.category_totals_for_year(LEDGER_SALES, 2026)
    with pytest.raises(InvalidRequestError):
        reporting_service.category_totals_for_year("REFUNDS", 2026, branch_id=shop.branch.id)
    with pytest.raises(NotFoundError):
        reporting_service.category_totals_for_year(LEDGER_PURCHASES, 2026, user_id=99999)
