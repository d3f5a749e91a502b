import importlib
from datetime import date

import pytest

from app.config import Settings
from app.models.billing import Bill, BillingAuditAction, BillingAuditEntry, BillStatus
from app.models.customer import CustomerStatus
from app.services import billing as billing_service
from app.services.billing import _common as billing_common
from app.services.billing.generation import BillGeneration
from app.services.errors import SequenceExhaustedError, ValidationError

generation_module = importlib.import_module("app.services.billing.generation")


def test_generate_bills_active_customers_once(db_session, make_customer):
    first = make_customer(name="Ani", monthly_fee=150000, carried_debt=300000)
    make_customer(name="Budi", monthly_fee=200000)
    make_customer(name="Gone", status=CustomerStatus.terminated)

    summary = billing_service.generation.generate(db_session, 10, 2026)

    assert summary["created_count"] == 2
    assert summary["customers_scanned"] == 2
    assert summary["failed"] == []
    assert summary["total_amount"] == 450000 + 200000
    bills = {bill.customer_id: bill for bill in summary["created"]}
    ani = bills[first.id]
    assert ani.amount == 150000
    assert ani.previous_debt == 300000
    assert ani.compensation == 0
    assert ani.total_amount == 450000
    assert ani.remaining_amount == 450000
    assert ani.status == BillStatus.unpaid
    numbers = sorted(bill.bill_number for bill in summary["created"])
    assert numbers == ["BILL-2026-10-0001", "BILL-2026-10-0002"]


def test_generate_is_idempotent(db_session, make_customer):
    make_customer(name="Ani")
    make_customer(name="Budi")
    billing_service.generation.generate(db_session, 10, 2026)

    second = billing_service.generation.generate(db_session, 10, 2026)

    assert second["created"] == []
    assert second["skipped"] == 2
    assert "No customers left to bill" in second["message"]
    assert db_session.query(Bill).count() == 2


def test_rerun_after_new_customer_only_bills_newcomer(db_session, make_customer):
    make_customer(name="Ani")
    billing_service.generation.generate(db_session, 10, 2026)
    newcomer = make_customer(name="Citra")

    summary = billing_service.generation.generate(db_session, 10, 2026)

    assert [bill.customer_id for bill in summary["created"]] == [newcomer.id]
    assert summary["created"][0].bill_number == "BILL-2026-10-0002"


def test_no_active_customers_is_not_an_error(db_session):
    summary = billing_service.generation.generate(db_session, 1, 2027)
    assert summary["created"] == []
    assert summary["created_count"] == 0
    assert summary["message"]


def test_zero_fee_customer_billed_only_with_debt(db_session, make_customer):
    debtor = make_customer(name="Debtor", monthly_fee=0, carried_debt=75000)
    make_customer(name="Free", monthly_fee=0, carried_debt=0)

    summary = billing_service.generation.generate(db_session, 10, 2026)

    assert [bill.customer_id for bill in summary["created"]] == [debtor.id]
    assert summary["created"][0].total_amount == 75000
    assert summary["skipped"] == 1


def test_debt_is_snapshotted_at_generation(db_session, make_customer):
    customer = make_customer(carried_debt=50000)
    bill = billing_service.generation.generate(db_session, 10, 2026)["created"][0]

    customer.carried_debt = 999999
    db_session.commit()
    db_session.refresh(bill)

    assert bill.previous_debt == 50000


def test_failure_for_one_customer_does_not_stop_run(db_session, make_customer, monkeypatch):
    broken = make_customer(name="Broken")
    healthy = make_customer(name="Healthy")
    original = BillGeneration._create_bill

    def flaky(db, customer, billing_month, billing_year, due_date):
        if customer.id == broken.id:
            raise SequenceExhaustedError("BILL-2026-10", 5)
        return original(db, customer, billing_month, billing_year, due_date)

    monkeypatch.setattr(BillGeneration, "_create_bill", staticmethod(flaky))

    summary = billing_service.generation.generate(db_session, 10, 2026)

    assert [bill.customer_id for bill in summary["created"]] == [healthy.id]
    assert summary["failed"] == [
        {
            "customer_id": broken.id,
            "code": "sequence_exhausted",
            "message": "Could not allocate a unique number for BILL-2026-10 after 5 attempts",
        }
    ]

    monkeypatch.setattr(BillGeneration, "_create_bill", staticmethod(original))
    retry = billing_service.generation.generate(db_session, 10, 2026)
    assert [bill.customer_id for bill in retry["created"]] == [broken.id]


def test_concurrent_billing_of_same_customer_counts_as_skipped(
    db_session, make_customer, monkeypatch, _no_backoff_sleep
):
    customer = make_customer()
    billing_service.generation.generate(db_session, 10, 2026)
    # Simulate a run that read the billed set before the other run committed.
    monkeypatch.setattr(generation_module, "_billed_customer_ids", lambda *args: set())

    summary = billing_service.generation.generate(db_session, 10, 2026)

    assert summary["created"] == []
    assert summary["failed"] == []
    assert summary["skipped"] == 1
    assert _no_backoff_sleep == []
    assert db_session.query(Bill).filter(Bill.customer_id == customer.id).count() == 1


def test_generation_writes_summary_audit_entry(db_session, make_customer):
    make_customer(name="Ani", monthly_fee=100000)
    billing_service.generation.generate(db_session, 10, 2026)

    entries = (
        db_session.query(BillingAuditEntry)
        .filter(BillingAuditEntry.action == BillingAuditAction.generation)
        .all()
    )
    assert len(entries) == 1
    assert entries[0].details["created"] == 1
    assert entries[0].details["total_amount"] == 100000


def test_default_due_date_is_end_of_period(db_session, make_customer):
    make_customer()
    bill = billing_service.generation.generate(db_session, 2, 2028)["created"][0]
    assert bill.due_date == date(2028, 2, 29)


def test_fixed_day_due_date_policy_is_clamped(monkeypatch):
    monkeypatch.setattr(
        billing_common,
        "settings",
        Settings(billing_due_date_policy="fixed_day_next_period", billing_due_day=31),
    )
    assert billing_common._resolve_due_date(1, 2026) == date(2026, 2, 28)
    assert billing_common._resolve_due_date(12, 2026) == date(2027, 1, 31)


@pytest.mark.parametrize("month, year", [(0, 2026), (13, 2026), (5, 1999)])
def test_invalid_period_rejected(db_session, month, year):
    with pytest.raises(ValidationError):
        billing_service.generation.generate(db_session, month, year)
