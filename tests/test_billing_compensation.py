import importlib

import pytest
from sqlalchemy import update

from app.models.billing import Bill, BillingAuditAction, BillingAuditEntry, BillStatus
from app.schemas.billing import PaymentCreate
from app.services import billing as billing_service
from app.services.billing import _common as billing_common
from app.services.errors import ConcurrentUpdateError, InvalidAmountError

compensation_module = importlib.import_module("app.services.billing.compensation")


def test_debt_compensation_payment_scenario(db_session, make_customer):
    make_customer(monthly_fee=150000, carried_debt=300000)
    bill = billing_service.generation.generate(db_session, 10, 2026)["created"][0]
    assert bill.total_amount == 450000
    assert bill.status == BillStatus.unpaid

    bill = billing_service.compensation.set_compensation(db_session, str(bill.id), 50000)
    assert bill.compensation == 50000
    assert bill.total_amount == 400000
    assert bill.remaining_amount == 400000

    result = billing_service.payments.record(
        db_session, str(bill.id), PaymentCreate(amount=400000)
    )
    assert result["bill"].status == BillStatus.paid
    assert result["bill"].remaining_amount == 0


def test_compensation_after_partial_payment(db_session, bill):
    billing_service.payments.record(db_session, str(bill.id), PaymentCreate(amount=100000))

    updated = billing_service.compensation.set_compensation(db_session, str(bill.id), 50000)

    assert updated.total_amount == 100000
    assert updated.remaining_amount == 0
    assert updated.status == BillStatus.paid
    assert updated.paid_at is not None


def test_compensation_edit_is_audited(db_session, bill):
    billing_service.compensation.set_compensation(db_session, str(bill.id), 20000)
    billing_service.compensation.set_compensation(db_session, str(bill.id), 5000)

    entries = (
        db_session.query(BillingAuditEntry)
        .filter(BillingAuditEntry.action == BillingAuditAction.compensation_edit)
        .all()
    )
    assert sorted(
        (e.details["old_compensation"], e.details["new_compensation"]) for e in entries
    ) == [
        (0, 20000),
        (20000, 5000),
    ]


def test_negative_compensation_rejected(db_session, bill):
    with pytest.raises(InvalidAmountError):
        billing_service.compensation.set_compensation(db_session, str(bill.id), -1)


def test_concurrent_change_aborts_compensation(db_session, bill, monkeypatch):
    original = billing_common._load_bill

    def load_then_concurrent_payment(db, bill_id, **kwargs):
        loaded = original(db, bill_id, **kwargs)
        db.execute(
            update(Bill)
            .where(Bill.id == loaded.id)
            .values(
                paid_amount=Bill.paid_amount + 1000,
                remaining_amount=Bill.remaining_amount - 1000,
            )
            .execution_options(synchronize_session=False)
        )
        return loaded

    monkeypatch.setattr(compensation_module, "_load_bill", load_then_concurrent_payment)

    with pytest.raises(ConcurrentUpdateError) as excinfo:
        billing_service.compensation.set_compensation(db_session, str(bill.id), 10000)
    assert excinfo.value.status_code == 409

    db_session.refresh(bill)
    assert bill.compensation == 0
    assert bill.paid_amount == 0
    assert bill.total_amount == 150000
