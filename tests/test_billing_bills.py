import pytest
from sqlalchemy import update

from app.models.billing import Bill, BillingAuditAction, BillingAuditEntry, BillStatus, Payment
from app.schemas.billing import PaymentCreate
from app.services import billing as billing_service
from app.services.errors import ConfirmationRequiredError, LedgerIntegrityError, ValidationError


def test_stats_counts_and_sums(db_session, make_customer):
    make_customer(name="Ani", monthly_fee=100000)
    make_customer(name="Budi", monthly_fee=200000)
    make_customer(name="Citra", monthly_fee=300000)
    bills = sorted(
        billing_service.generation.generate(db_session, 10, 2026)["created"],
        key=lambda bill: bill.amount,
    )
    billing_service.payments.record(db_session, str(bills[0].id), PaymentCreate(amount=100000))
    billing_service.payments.record(db_session, str(bills[1].id), PaymentCreate(amount=50000))

    stats = billing_service.bills.stats(db_session, 10, 2026)

    assert stats == {
        "total_bills": 3,
        "unpaid": 1,
        "partial": 1,
        "paid": 1,
        "on_hold": 0,
        "total_amount": 600000,
        "paid_amount": 150000,
        "outstanding_amount": 450000,
    }
    assert billing_service.bills.stats(db_session, 11, 2026)["total_bills"] == 0


def test_list_bills_filters(db_session, make_customer):
    debtor = make_customer(name="Debtor", carried_debt=10000)
    make_customer(name="Clean")
    billing_service.generation.generate(db_session, 10, 2026)

    with_debt = billing_service.bills.list(
        db_session, None, None, 10, 2026, True, "bill_number", "asc", 10, 0
    )
    assert [bill.customer_id for bill in with_debt] == [debtor.id]

    unpaid = billing_service.bills.list_response(
        db_session, None, "unpaid", None, None, None, "created_at", "desc", 10, 0
    )
    assert unpaid["count"] == 2

    with pytest.raises(ValidationError):
        billing_service.bills.list(
            db_session, None, "void", None, None, None, "created_at", "desc", 10, 0
        )


def test_reconcile_rebuilds_from_payments_and_lifts_hold(db_session, bill):
    billing_service.payments.record(db_session, str(bill.id), PaymentCreate(amount=40000))
    db_session.execute(
        update(Bill)
        .where(Bill.id == bill.id)
        .values(paid_amount=0, remaining_amount=150000, on_hold=True, hold_reason="drift")
    )
    db_session.commit()

    reconciled = billing_service.bills.reconcile(db_session, str(bill.id))

    assert reconciled.paid_amount == 40000
    assert reconciled.remaining_amount == 110000
    assert reconciled.status == BillStatus.partial
    assert reconciled.on_hold is False
    assert reconciled.hold_reason is None
    entry = (
        db_session.query(BillingAuditEntry)
        .filter(BillingAuditEntry.action == BillingAuditAction.reconciliation)
        .one()
    )
    assert entry.details["hold_reason"] == "drift"
    assert entry.details["before"]["paid_amount"] == 0


def test_held_bill_can_be_paid_after_reconcile(db_session, bill):
    db_session.execute(update(Bill).where(Bill.id == bill.id).values(total_amount=1))
    db_session.commit()
    with pytest.raises(LedgerIntegrityError):
        billing_service.payments.record(db_session, str(bill.id), PaymentCreate(amount=1000))

    billing_service.bills.reconcile(db_session, str(bill.id))
    result = billing_service.payments.record(
        db_session, str(bill.id), PaymentCreate(amount=1000)
    )
    assert result["bill"].total_amount == 150000
    assert result["bill"].remaining_amount == 149000


def test_reset_requires_matching_token(db_session, bill):
    assert billing_service.reset_confirmation_token(10, 2026) == "RESET-2026-10"
    with pytest.raises(ConfirmationRequiredError):
        billing_service.bills.reset_period(db_session, "yes", 10, 2026)
    with pytest.raises(ConfirmationRequiredError):
        billing_service.bills.reset_period(db_session, "RESET-ALL", 10, 2026)
    assert db_session.query(Bill).count() == 1


def test_reset_single_period(db_session, make_customer):
    make_customer()
    october = billing_service.generation.generate(db_session, 10, 2026)["created"][0]
    billing_service.generation.generate(db_session, 11, 2026)
    billing_service.payments.record(db_session, str(october.id), PaymentCreate(amount=1000))

    result = billing_service.bills.reset_period(db_session, "RESET-2026-10", 10, 2026)

    assert result == {
        "scope": "2026-10",
        "bills_deleted": 1,
        "payments_deleted": 1,
        "audit_entries_deleted": 2,
    }
    remaining = db_session.query(Bill).all()
    assert [(bill.billing_month, bill.billing_year) for bill in remaining] == [(11, 2026)]
    runs = (
        db_session.query(BillingAuditEntry)
        .filter(BillingAuditEntry.action == BillingAuditAction.generation)
        .all()
    )
    assert [entry.details["billing_month"] for entry in runs] == [11]
    reset_entry = (
        db_session.query(BillingAuditEntry)
        .filter(BillingAuditEntry.action == BillingAuditAction.reset)
        .one()
    )
    assert reset_entry.details["bills_deleted"] == 1


def test_reset_everything(db_session, bill):
    billing_service.payments.record(db_session, str(bill.id), PaymentCreate(amount=1000))

    result = billing_service.bills.reset_period(db_session, "RESET-ALL")

    assert result["scope"] == "all"
    assert result["bills_deleted"] == 1
    assert db_session.query(Bill).count() == 0
    assert db_session.query(Payment).count() == 0
    assert [entry.action for entry in db_session.query(BillingAuditEntry).all()] == [
        BillingAuditAction.reset
    ]
