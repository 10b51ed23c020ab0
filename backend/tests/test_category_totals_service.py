from datetime import date, datetime

from checkout.extensions import db
from checkout.models import CategoryAggregate
from checkout.models.aggregates import LEDGER_PURCHASES, LEDGER_SALES
from checkout.services.category_totals_service import (
    AggregateScope,
    add_to_monthly_total,
    totals_for_year,
)
from checkout.services.concurrency import run_in_transaction


MARCH = datetime(2026, 3, 14, 12, 0)


def test_same_month_increments_one_row(shop, db_session, monthly_total):
    scope = AggregateScope.for_branch(shop.business.id, shop.branch.id)

    run_in_transaction(lambda: add_to_monthly_total(scope, shop.drinks, 3000, MARCH))
    run_in_transaction(lambda: add_to_monthly_total(scope, shop.drinks, 1500, datetime(2026, 3, 31, 23, 59)))

    rows = db_session.query(CategoryAggregate).all()
    assert len(rows) == 1
    assert rows[0].total_cents == 4500
    assert rows[0].period_start == date(2026, 3, 1)
    assert rows[0].ledger == LEDGER_SALES
    assert monthly_total(scope, shop.drinks.id, MARCH) == 4500


def test_months_categories_and_scopes_are_separate(shop, db_session, monthly_total):
    branch_scope = AggregateScope.for_branch(shop.business.id, shop.branch.id)
    user_scope = AggregateScope.for_user(shop.customer.id)

    def _op():
        add_to_monthly_total(branch_scope, shop.drinks, 1000, MARCH)
        add_to_monthly_total(branch_scope, shop.drinks, 200, datetime(2026, 4, 1))
        add_to_monthly_total(branch_scope, shop.snacks, 300, MARCH)
        add_to_monthly_total(user_scope, shop.drinks, 1160, MARCH)

    run_in_transaction(_op)

    assert db_session.query(CategoryAggregate).count() == 4
    assert monthly_total(branch_scope, shop.drinks.id, MARCH) == 1000
    assert monthly_total(user_scope, shop.drinks.id, MARCH) == 1160
    user_row = db_session.query(CategoryAggregate).filter_by(scope_key=f"user:{shop.customer.id}").one()
    assert user_row.ledger == LEDGER_PURCHASES
    assert user_row.user_id == shop.customer.id


def test_negative_amounts_reduce_the_total(shop, db_session, monthly_total):
    scope = AggregateScope.for_branch(shop.business.id, shop.branch.id)
    run_in_transaction(lambda: add_to_monthly_total(scope, shop.drinks, 5000, MARCH))
    run_in_transaction(lambda: add_to_monthly_total(scope, shop.drinks, -2000, MARCH))

    assert monthly_total(scope, shop.drinks.id, MARCH) == 3000


def test_category_name_is_a_snapshot(shop, db_session):
    scope = AggregateScope.for_branch(shop.business.id, shop.branch.id)
    run_in_transaction(lambda: add_to_monthly_total(scope, shop.drinks, 1000, MARCH))

    shop.drinks.name = "Beverages"
    db.session.commit()
    run_in_transaction(lambda: add_to_monthly_total(scope, shop.drinks, 1000, MARCH))

    row = db_session.query(CategoryAggregate).one()
    assert row.category_name == "Drinks"
    assert row.total_cents == 2000


def test_rollback_discards_the_increment(shop, db_session):
    scope = AggregateScope.for_branch(shop.business.id, shop.branch.id)

    def _op():
        add_to_monthly_total(scope, shop.drinks, 1000, MARCH)
        raise RuntimeError("abort")

    try:
        run_in_transaction(_op)
    except RuntimeError:
        pass

    assert db_session.query(CategoryAggregate).count() == 0


def test_totals_for_year_lists_every_month(shop, db_session):
    scope = AggregateScope.for_branch(shop.business.id, shop.branch.id)

    def _op():
        add_to_monthly_total(scope, shop.snacks, 300, MARCH)
        add_to_monthly_total(scope, shop.drinks, 1000, MARCH)
        add_to_monthly_total(scope, shop.drinks, 700, datetime(2025, 12, 5))

    run_in_transaction(_op)

    months = totals_for_year(scope, 2026)
    assert [m["month"] for m in months] == list(range(1, 13))
    assert months[2]["categories"] == [
        {"category_id": shop.drinks.id, "category": "Drinks", "total_cents": 1000},
        {"category_id": shop.snacks.id, "category": "Snacks", "total_cents": 300},
    ]
    assert all(not m["categories"] for i, m in enumerate(months) if i != 2)
