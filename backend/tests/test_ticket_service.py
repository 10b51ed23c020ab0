import pytest

from checkout.models import Sale, TicketSequence
from checkout.services.concurrency import run_in_transaction
from checkout.services.ticket_service import next_ticket_number, peek_next_ticket_number


def _existing_sale(shop, ticket_number):
    return Sale(
        business_id=shop.business.id,
        branch_id=shop.branch.id,
        cash_register_id=shop.register.id,
        ticket_number=ticket_number,
        total_amount_cents=100,
        amount_cancelled_cents=100,
        status="paid",
    )


def test_first_ticket_of_a_branch_is_one(shop, db_session):
    assert peek_next_ticket_number(shop.branch.id) == 1
    assert run_in_transaction(lambda: next_ticket_number(shop.branch.id)) == 1
    assert run_in_transaction(lambda: next_ticket_number(shop.branch.id)) == 2


def test_counter_seeds_from_existing_tickets(shop, db_session):
    db_session.add(_existing_sale(shop, 41))
    db_session.commit()

    assert peek_next_ticket_number(shop.branch.id) == 42
    assert run_in_transaction(lambda: next_ticket_number(shop.branch.id)) == 42
    assert run_in_transaction(lambda: next_ticket_number(shop.branch.id)) == 43
    assert peek_next_ticket_number(shop.branch.id) == 44
    assert db_session.query(TicketSequence).count() == 1


def test_branches_have_independent_sequences(shop, db_session):
    assert run_in_transaction(lambda: next_ticket_number(shop.branch.id)) == 1
    assert run_in_transaction(lambda: next_ticket_number(shop.other_branch.id)) == 1
    assert run_in_transaction(lambda: next_ticket_number(shop.branch.id)) == 2


def test_rolled_back_unit_does_not_consume_a_number(shop, db_session):
    run_in_transaction(lambda: next_ticket_number(shop.branch.id))

    def _op():
        next_ticket_number(shop.branch.id)
        raise ValueError("sale rejected")

    with pytest.raises(ValueError):
        run_in_transaction(_op)

    assert peek_next_ticket_number(shop.branch.id) == 2
