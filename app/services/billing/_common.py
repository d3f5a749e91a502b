"""Common helper functions for billing services.

This module provides period validation, due date resolution and bill
loading helpers shared across billing service modules.
"""

import calendar
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.config import settings
from app.models.billing import Bill, Payment
from app.services.common import coerce_uuid
from app.services.errors import BillOnHoldError, NotFoundError, ValidationError

BILL_PREFIX = "BILL"
PAYMENT_PREFIX = "PAY"


def _validate_period(billing_month, billing_year) -> tuple[int, int]:
    """Validate a billing period and return it as ints."""
    if isinstance(billing_month, bool) or not isinstance(billing_month, int):
        raise ValidationError("billing_month must be an integer", field="billing_month")
    if isinstance(billing_year, bool) or not isinstance(billing_year, int):
        raise ValidationError("billing_year must be an integer", field="billing_year")
    if not 1 <= billing_month <= 12:
        raise ValidationError(
            "billing_month must be between 1 and 12",
            field="billing_month",
            value=billing_month,
        )
    if not 2000 <= billing_year <= 9999:
        raise ValidationError(
            "billing_year must be between 2000 and 9999",
            field="billing_year",
            value=billing_year,
        )
    return billing_month, billing_year


def _resolve_due_date(
    billing_month: int,
    billing_year: int,
    policy: str | None = None,
    due_day: int | None = None,
) -> date:
    """Resolve the due date of a bill for the given period.

    ``end_of_period`` is the last day of the billed month.
    ``fixed_day_next_period`` is ``due_day`` of the following month, clamped
    to that month's length.
    """
    policy = policy or settings.billing_due_date_policy
    due_day = due_day or settings.billing_due_day
    if policy == "end_of_period":
        last_day = calendar.monthrange(billing_year, billing_month)[1]
        return date(billing_year, billing_month, last_day)
    if policy == "fixed_day_next_period":
        if billing_month == 12:
            year, month = billing_year + 1, 1
        else:
            year, month = billing_year, billing_month + 1
        last_day = calendar.monthrange(year, month)[1]
        return date(year, month, min(due_day, last_day))
    raise ValidationError(f"Unknown due date policy {policy}", field="policy")


def _load_bill(db: Session, bill_id, *, for_update: bool = False) -> Bill:
    """Re-read a bill from the store, discarding any stale identity-map state."""
    stmt = (
        select(Bill)
        .where(Bill.id == coerce_uuid(bill_id))
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    bill = db.execute(stmt).scalar_one_or_none()
    if not bill:
        raise NotFoundError("Bill not found", bill_id=str(bill_id))
    return bill


def _ensure_not_on_hold(bill: Bill) -> None:
    if bill.on_hold:
        raise BillOnHoldError(
            "Bill is on reconciliation hold",
            bill_id=str(bill.id),
            bill_number=bill.bill_number,
            hold_reason=bill.hold_reason,
        )


def _payments_total(db: Session, bill_id) -> int:
    total = db.execute(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.bill_id == coerce_uuid(bill_id)
        )
    ).scalar_one()
    return int(total)


def _bill_snapshot(bill: Bill) -> dict:
    return {
        "bill_number": bill.bill_number,
        "amount": bill.amount,
        "previous_debt": bill.previous_debt,
        "compensation": bill.compensation,
        "total_amount": bill.total_amount,
        "paid_amount": bill.paid_amount,
        "remaining_amount": bill.remaining_amount,
        "status": bill.status.value if bill.status else None,
    }
