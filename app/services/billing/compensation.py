"""Service-disruption compensation on bills."""

import logging
from datetime import UTC, datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.billing import Bill, BillingAuditAction, BillStatus
from app.services.billing._common import _ensure_not_on_hold, _load_bill
from app.services.billing.audit import BillingAuditLog
from app.services.billing.balance import _require_amount, compute_balance
from app.services.errors import ConcurrentUpdateError

logger = logging.getLogger(__name__)


class CompensationAdjuster:
    @staticmethod
    def set_compensation(db: Session, bill_id: str, compensation: int) -> Bill:
        """Replace a bill's compensation and recompute its balance.

        The row is locked while the new balance is computed, and the write
        only applies if ``paid_amount`` and ``compensation`` still hold the
        values that balance was computed from.
        """
        compensation = _require_amount(compensation, "compensation")
        try:
            bill = _load_bill(db, bill_id, for_update=True)
            _ensure_not_on_hold(bill)
            seen_paid = bill.paid_amount
            seen_compensation = bill.compensation
            balance = compute_balance(
                bill.amount, bill.previous_debt, compensation, seen_paid
            )
            values = {
                "compensation": compensation,
                "total_amount": balance.total_amount,
                "remaining_amount": balance.remaining_amount,
                "status": balance.status,
            }
            if balance.status == BillStatus.paid and bill.paid_at is None:
                values["paid_at"] = datetime.now(UTC)
            result = db.execute(
                update(Bill)
                .where(
                    Bill.id == bill.id,
                    Bill.paid_amount == seen_paid,
                    Bill.compensation == seen_compensation,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ConcurrentUpdateError(
                    "Bill changed while compensation was being applied",
                    bill_id=str(bill.id),
                )
            BillingAuditLog.append(
                db,
                BillingAuditAction.compensation_edit,
                f"Compensation on {bill.bill_number} changed from "
                f"{seen_compensation} to {compensation}",
                bill_id=bill.id,
                details={
                    "old_compensation": seen_compensation,
                    "new_compensation": compensation,
                    "total_amount": balance.total_amount,
                    "remaining_amount": balance.remaining_amount,
                    "status": balance.status.value,
                },
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(bill)
        logger.info(
            "Compensation on %s set to %s (total %s, remaining %s)",
            bill.bill_number,
            compensation,
            bill.total_amount,
            bill.remaining_amount,
        )
        return bill
