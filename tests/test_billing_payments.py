import importlib
import os
from datetime import datetime, timezone

import pytest
from sqlalchemy import update

from app.models.billing import (
    Bill,
    BillingAuditAction,
    BillingAuditEntry,
    BillStatus,
    Payment,
    PaymentMethod,
)
from app.schemas.billing import PaymentCreate
from app.services import billing as billing_service
from app.services.billing import _common as billing_common
from app.services.errors import (
    BillOnHoldError,
    InvalidAmountError,
    LedgerIntegrityError,
    NotFoundError,
    OverpaymentError,
)

payments_module = importlib.import_module("app.services.billing.payments")


def _pay(db_session, bill, amount, **kwargs):
    return billing_service.payments.record(
        db_session, str(bill.id), PaymentCreate(amount=amount, **kwargs)
    )


def test_partial_then_overpayment_rejected(db_session, bill):
    result = _pay(db_session, bill, 100000)

    assert result["bill"].paid_amount == 100000
    assert result["bill"].remaining_amount == 50000
    assert result["bill"].status == BillStatus.partial
    assert result["payment"].payment_number.startswith("PAY-")
    assert result["notification"].sent is False

    with pytest.raises(OverpaymentError) as excinfo:
        _pay(db_session, bill, 60000)
    assert excinfo.value.status_code == 409

    db_session.refresh(bill)
    assert bill.paid_amount == 100000
    assert bill.remaining_amount == 50000
    assert db_session.query(Payment).count() == 1


def test_full_payment_marks_paid(db_session, bill):
    result = _pay(db_session, bill, 150000, method=PaymentMethod.transfer)
    paid = result["bill"]
    assert paid.status == BillStatus.paid
    assert paid.remaining_amount == 0
    assert paid.paid_at is not None
    assert result["payment"].method == PaymentMethod.transfer
    assert result["payment"].customer_id == paid.customer_id


def test_two_payments_summing_to_remaining_both_apply(db_session, bill):
    _pay(db_session, bill, 70000)
    result = _pay(db_session, bill, 80000)
    assert result["bill"].remaining_amount == 0
    assert result["bill"].status == BillStatus.paid


def test_payments_exceeding_remaining_only_first_applies(db_session, bill):
    _pay(db_session, bill, 90000)
    with pytest.raises(OverpaymentError):
        _pay(db_session, bill, 90000)
    db_session.refresh(bill)
    assert bill.paid_amount == 90000


def test_conditional_update_rejects_stale_read(db_session, bill, monkeypatch):
    original = billing_common._load_bill

    def load_then_concurrent_payment(db, bill_id, **kwargs):
        loaded = original(db, bill_id, **kwargs)
        # Another writer pays 100000 after this bill was read.
        db.execute(
            update(Bill)
            .where(Bill.id == loaded.id)
            .values(
                paid_amount=Bill.paid_amount + 100000,
                remaining_amount=Bill.remaining_amount - 100000,
            )
            .execution_options(synchronize_session=False)
        )
        return loaded

    monkeypatch.setattr(payments_module, "_load_bill", load_then_concurrent_payment)

    with pytest.raises(OverpaymentError):
        _pay(db_session, bill, 60000)
    assert db_session.query(Payment).count() == 0


@pytest.mark.parametrize("amount", [0, -5])
def test_non_positive_amount_rejected(db_session, bill, amount):
    with pytest.raises(InvalidAmountError):
        _pay(db_session, bill, amount)
    assert db_session.query(Payment).count() == 0


def test_float_amount_rejected_by_schema():
    with pytest.raises(ValueError):
        PaymentCreate(amount=100.5)


def test_missing_bill(db_session):
    with pytest.raises(NotFoundError):
        billing_service.payments.record(
            db_session,
            "00000000-0000-0000-0000-000000000000",
            PaymentCreate(amount=1000),
        )


def test_payment_writes_audit_entry(db_session, bill):
    result = _pay(db_session, bill, 50000, reference_number="TRX-1")
    entry = (
        db_session.query(BillingAuditEntry)
        .filter(BillingAuditEntry.action == BillingAuditAction.payment)
        .one()
    )
    assert entry.bill_id == bill.id
    assert entry.details["payment_number"] == result["payment"].payment_number
    assert entry.details["remaining_amount"] == 100000


def test_inconsistent_bill_is_put_on_hold(db_session, bill):
    db_session.execute(
        update(Bill).where(Bill.id == bill.id).values(total_amount=120000)
    )
    db_session.commit()

    with pytest.raises(LedgerIntegrityError):
        _pay(db_session, bill, 10000)

    db_session.refresh(bill)
    assert bill.on_hold is True
    assert "total_amount" in bill.hold_reason
    assert bill.paid_amount == 0
    assert db_session.query(Payment).count() == 0

    with pytest.raises(BillOnHoldError):
        _pay(db_session, bill, 10000)


def test_list_payments_filters(db_session, bill, make_customer):
    _pay(db_session, bill, 10000, method=PaymentMethod.cash)
    _pay(db_session, bill, 20000, method=PaymentMethod.ewallet)

    by_method = billing_service.payments.list(
        db_session,
        customer_id=None,
        bill_id=str(bill.id),
        method="ewallet",
        date_from=None,
        date_to=None,
        order_by="payment_date",
        order_dir="asc",
        limit=10,
        offset=0,
    )
    assert [payment.amount for payment in by_method] == [20000]

    future = billing_service.payments.list(
        db_session,
        customer_id=str(bill.customer_id),
        bill_id=None,
        method=None,
        date_from=datetime(2100, 1, 1, tzinfo=timezone.utc),
        date_to=None,
        order_by="payment_date",
        order_dir="asc",
        limit=10,
        offset=0,
    )
    assert future == []


requires_server_db = pytest.mark.skipif(
    not os.getenv("TEST_DATABASE_URL"),
    reason="two open transactions need a server database (TEST_DATABASE_URL)",
)


def _interleave_payment(monkeypatch, session_factory, bill_id, amount):
    """Have a second session commit a payment right after the first reads the bill."""
    original = billing_common._load_bill
    state = {"done": False}

    def load_then_pay_elsewhere(db, requested_id, **kwargs):
        loaded = original(db, requested_id, **kwargs)
        if not state["done"]:
            state["done"] = True
            with session_factory() as other:
                billing_service.payments.record(
                    other, str(bill_id), PaymentCreate(amount=amount)
                )
        return loaded

    monkeypatch.setattr(payments_module, "_load_bill", load_then_pay_elsewhere)


@requires_server_db
def test_interleaved_payments_summing_to_remaining_both_apply(
    db_session, session_factory, bill, monkeypatch
):
    _interleave_payment(monkeypatch, session_factory, bill.id, 80000)

    result = _pay(db_session, bill, 70000)

    assert result["bill"].paid_amount == 150000
    assert result["bill"].remaining_amount == 0
    assert result["bill"].status == BillStatus.paid
    assert db_session.query(Payment).filter(Payment.bill_id == bill.id).count() == 2


@requires_server_db
def test_interleaved_payments_exceeding_remaining_reject_one(
    db_session, session_factory, bill, monkeypatch
):
    _interleave_payment(monkeypatch, session_factory, bill.id, 90000)

    with pytest.raises(OverpaymentError):
        _pay(db_session, bill, 90000)

    db_session.refresh(bill)
    assert bill.paid_amount == 90000
    assert bill.remaining_amount == 60000
    assert bill.status == BillStatus.partial
    assert db_session.query(Payment).filter(Payment.bill_id == bill.id).count() == 1
