"""Bill queries, statistics, reconciliation and ledger reset."""

import logging
from datetime import UTC, datetime

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import Session

from app.models.billing import Bill, BillingAuditAction, BillingAuditEntry, BillStatus, Payment
from app.services.billing._common import (
    _bill_snapshot,
    _load_bill,
    _payments_total,
    _validate_period,
)
from app.services.billing.audit import BillingAuditLog
from app.services.billing.balance import compute_balance, verify_bill
from app.services.common import (
    ListResponseMixin,
    apply_ordering,
    apply_pagination,
    coerce_uuid,
    get_or_404,
    validate_enum,
)
from app.services.errors import (
    ConfirmationRequiredError,
    LedgerIntegrityError,
    ValidationError,
)

logger = logging.getLogger(__name__)

RESET_ALL_TOKEN = "RESET-ALL"


def reset_confirmation_token(
    billing_month: int | None = None, billing_year: int | None = None
) -> str:
    """Token an operator must echo back to reset the ledger or one period."""
    if billing_month is None and billing_year is None:
        return RESET_ALL_TOKEN
    if billing_month is None or billing_year is None:
        raise ValidationError(
            "billing_month and billing_year must be given together",
            field="billing_month",
        )
    billing_month, billing_year = _validate_period(billing_month, billing_year)
    return f"RESET-{billing_year:04d}-{billing_month:02d}"


def _generation_entries(billing_month: int, billing_year: int):
    # Run summaries carry no bill_id; their period lives in details.
    return and_(
        BillingAuditEntry.action == BillingAuditAction.generation,
        BillingAuditEntry.details["billing_month"].as_integer() == billing_month,
        BillingAuditEntry.details["billing_year"].as_integer() == billing_year,
    )


class Bills(ListResponseMixin):
    @staticmethod
    def get(db: Session, bill_id: str):
        return get_or_404(db, Bill, bill_id, "Bill not found")

    @staticmethod
    def list(
        db: Session,
        customer_id: str | None,
        status: str | None,
        billing_month: int | None,
        billing_year: int | None,
        has_debt: bool | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ):
        query = db.query(Bill)
        if customer_id:
            query = query.filter(Bill.customer_id == coerce_uuid(customer_id))
        if status:
            query = query.filter(Bill.status == validate_enum(status, BillStatus, "status"))
        if billing_month is not None:
            query = query.filter(Bill.billing_month == billing_month)
        if billing_year is not None:
            query = query.filter(Bill.billing_year == billing_year)
        if has_debt is True:
            query = query.filter(Bill.previous_debt > 0)
        elif has_debt is False:
            query = query.filter(Bill.previous_debt == 0)
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {
                "created_at": Bill.created_at,
                "bill_number": Bill.bill_number,
                "due_date": Bill.due_date,
                "total_amount": Bill.total_amount,
                "remaining_amount": Bill.remaining_amount,
            },
        )
        return apply_pagination(query, limit, offset).all()

    @staticmethod
    def stats(
        db: Session, billing_month: int | None = None, billing_year: int | None = None
    ) -> dict:
        filters = []
        if billing_month is not None:
            filters.append(Bill.billing_month == billing_month)
        if billing_year is not None:
            filters.append(Bill.billing_year == billing_year)

        status_rows = db.execute(
            select(Bill.status, func.count(Bill.id)).where(*filters).group_by(Bill.status)
        ).all()
        counts = {status.value: 0 for status in BillStatus}
        for status, count in status_rows:
            counts[status.value] = int(count)

        total_amount, paid_amount, outstanding = db.execute(
            select(
                func.coalesce(func.sum(Bill.total_amount), 0),
                func.coalesce(func.sum(Bill.paid_amount), 0),
                func.coalesce(func.sum(Bill.remaining_amount), 0),
            ).where(*filters)
        ).one()
        on_hold = db.execute(
            select(func.count(Bill.id)).where(Bill.on_hold.is_(True), *filters)
        ).scalar_one()
        return {
            "total_bills": sum(counts.values()),
            "unpaid": counts[BillStatus.unpaid.value],
            "partial": counts[BillStatus.partial.value],
            "paid": counts[BillStatus.paid.value],
            "on_hold": int(on_hold),
            "total_amount": int(total_amount),
            "paid_amount": int(paid_amount),
            "outstanding_amount": int(outstanding),
        }

    @staticmethod
    def reconcile(db: Session, bill_id: str) -> Bill:
        """Rebuild a bill's paid amount from its payments and lift any hold."""
        try:
            bill = _load_bill(db, bill_id, for_update=True)
            before = _bill_snapshot(bill)
            paid_amount = _payments_total(db, bill.id)
            balance = compute_balance(
                bill.amount, bill.previous_debt, bill.compensation, paid_amount
            )
            bill.paid_amount = paid_amount
            bill.total_amount = balance.total_amount
            bill.remaining_amount = balance.remaining_amount
            bill.status = balance.status
            if balance.status != BillStatus.paid:
                bill.paid_at = None
            elif bill.paid_at is None:
                bill.paid_at = datetime.now(UTC)
            hold_reason = bill.hold_reason
            bill.on_hold = False
            bill.hold_reason = None
            db.flush()
            problems = verify_bill(bill, payments_total=paid_amount)
            if problems:
                raise LedgerIntegrityError(
                    "Reconciliation left the bill inconsistent",
                    bill_id=str(bill.id),
                    problems=problems,
                )
            BillingAuditLog.append(
                db,
                BillingAuditAction.reconciliation,
                f"Bill {bill.bill_number} reconciled from its payments",
                bill_id=bill.id,
                details={
                    "before": before,
                    "after": _bill_snapshot(bill),
                    "hold_reason": hold_reason,
                },
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(bill)
        logger.info("Bill %s reconciled (paid %s)", bill.bill_number, bill.paid_amount)
        return bill

    @staticmethod
    def reset_period(
        db: Session,
        confirmation: str,
        billing_month: int | None = None,
        billing_year: int | None = None,
    ) -> dict:
        """Delete bills, their payments and audit entries.

        Without a period the whole ledger goes. ``confirmation`` must equal
        ``reset_confirmation_token`` for the same arguments.
        """
        expected = reset_confirmation_token(billing_month, billing_year)
        if confirmation != expected:
            raise ConfirmationRequiredError(
                f"Confirmation token {expected} is required", expected=expected
            )

        bill_ids = select(Bill.id)
        if billing_month is not None:
            bill_ids = bill_ids.where(
                Bill.billing_month == billing_month, Bill.billing_year == billing_year
            )
        scope = "all" if expected == RESET_ALL_TOKEN else expected.removeprefix("RESET-")

        try:
            if expected == RESET_ALL_TOKEN:
                audit_stmt = delete(BillingAuditEntry)
                payment_stmt = delete(Payment)
                bill_stmt = delete(Bill)
            else:
                audit_stmt = delete(BillingAuditEntry).where(
                    or_(
                        BillingAuditEntry.bill_id.in_(bill_ids),
                        _generation_entries(billing_month, billing_year),
                    )
                )
                payment_stmt = delete(Payment).where(Payment.bill_id.in_(bill_ids))
                bill_stmt = delete(Bill).where(
                    Bill.billing_month == billing_month, Bill.billing_year == billing_year
                )
            audit_deleted = db.execute(
                audit_stmt.execution_options(synchronize_session=False)
            ).rowcount
            payments_deleted = db.execute(
                payment_stmt.execution_options(synchronize_session=False)
            ).rowcount
            bills_deleted = db.execute(
                bill_stmt.execution_options(synchronize_session=False)
            ).rowcount
            result = {
                "scope": scope,
                "bills_deleted": bills_deleted,
                "payments_deleted": payments_deleted,
                "audit_entries_deleted": audit_deleted,
            }
            BillingAuditLog.append(
                db,
                BillingAuditAction.reset,
                f"Ledger reset ({scope}): {bills_deleted} bills, "
                f"{payments_deleted} payments removed",
                details=result,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.expire_all()
        logger.warning(
            "Ledger reset %s: bills=%s payments=%s audit=%s",
            scope,
            bills_deleted,
            payments_deleted,
            audit_deleted,
        )
        return result
