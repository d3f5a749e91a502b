"""Payment recording against bills."""

import logging
from datetime import UTC, datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.metrics import PAYMENTS_RECORDED, PAYMENTS_REJECTED
from app.models.billing import Bill, BillingAuditAction, BillStatus, Payment, PaymentMethod
from app.schemas.billing import PaymentCreate
from app.services import notifications, numbering
from app.services.billing._common import (
    PAYMENT_PREFIX,
    _ensure_not_on_hold,
    _load_bill,
    _payments_total,
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
    BillingError,
    InvalidAmountError,
    LedgerIntegrityError,
    OverpaymentError,
)

logger = logging.getLogger(__name__)


def _place_on_hold(db: Session, bill_id, reason: str) -> None:
    """Flag a bill for reconciliation in its own transaction."""
    db.execute(
        update(Bill)
        .where(Bill.id == bill_id)
        .values(on_hold=True, hold_reason=reason)
    )
    db.commit()
    logger.error("Bill %s placed on hold: %s", bill_id, reason)


class Payments(ListResponseMixin):
    @staticmethod
    def record(db: Session, bill_id: str, payload: PaymentCreate) -> dict:
        """Apply a payment to a bill.

        The balance change, the payment row and its audit entry commit
        together or not at all. The remaining-amount check happens inside
        the UPDATE itself, so of two concurrent payments that together
        exceed the balance only one can apply.

        Raises:
            InvalidAmountError: amount is not a positive integer.
            NotFoundError: no such bill.
            BillOnHoldError: the bill awaits reconciliation.
            OverpaymentError: amount exceeds the remaining balance.
            LedgerIntegrityError: the bill's amounts stopped adding up.
        """
        amount = payload.amount
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            PAYMENTS_REJECTED.labels(code=InvalidAmountError.code).inc()
            raise InvalidAmountError(
                "Payment amount must be a positive integer", field="amount"
            )
        method = validate_enum(payload.method, PaymentMethod, "method")

        bill = _load_bill(db, bill_id)
        bill_pk = bill.id
        try:
            _ensure_not_on_hold(bill)
            if amount > bill.remaining_amount:
                raise OverpaymentError(
                    "Payment exceeds remaining balance",
                    bill_id=str(bill.id),
                    amount=amount,
                    remaining_amount=bill.remaining_amount,
                )

            result = db.execute(
                update(Bill)
                .where(
                    Bill.id == bill.id,
                    Bill.remaining_amount >= amount,
                    Bill.on_hold.is_(False),
                )
                .values(
                    paid_amount=Bill.paid_amount + amount,
                    remaining_amount=Bill.remaining_amount - amount,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                # Someone else paid (or held) the bill since it was read.
                raise OverpaymentError(
                    "Payment exceeds remaining balance",
                    bill_id=str(bill.id),
                    amount=amount,
                )

            payment_date = payload.payment_date or datetime.now(UTC)

            def persist(number: str) -> Payment:
                payment = Payment(
                    payment_number=number,
                    bill_id=bill.id,
                    customer_id=bill.customer_id,
                    amount=amount,
                    method=method,
                    payment_date=payment_date,
                    reference_number=payload.reference_number,
                    notes=payload.notes,
                    recorded_by=payload.recorded_by,
                )
                db.add(payment)
                return payment

            payment = numbering.persist_with_retry(
                db,
                prefix=PAYMENT_PREFIX,
                stem=PAYMENT_PREFIX,
                candidate=numbering.payment_number,
                persist=persist,
                column=Payment.payment_number,
                constraint="uq_payments_payment_number",
            )

            db.refresh(bill)
            balance = compute_balance(
                bill.amount, bill.previous_debt, bill.compensation, bill.paid_amount
            )
            bill.status = balance.status
            if balance.status == BillStatus.paid and bill.paid_at is None:
                bill.paid_at = datetime.now(UTC)
            db.flush()

            problems = verify_bill(bill, payments_total=_payments_total(db, bill.id))
            if problems:
                raise LedgerIntegrityError(
                    "Bill amounts are inconsistent", bill_id=str(bill.id), problems=problems
                )

            BillingAuditLog.append(
                db,
                BillingAuditAction.payment,
                f"Payment {payment.payment_number} of {amount} applied to "
                f"{bill.bill_number}",
                bill_id=bill.id,
                details={
                    "payment_number": payment.payment_number,
                    "amount": amount,
                    "method": method.value,
                    "paid_amount": bill.paid_amount,
                    "remaining_amount": bill.remaining_amount,
                    "status": bill.status.value,
                },
            )
            db.commit()
        except LedgerIntegrityError as exc:
            db.rollback()
            PAYMENTS_REJECTED.labels(code=exc.code).inc()
            _place_on_hold(db, bill_pk, "; ".join(exc.details.get("problems", [])))
            raise
        except BillingError as exc:
            db.rollback()
            PAYMENTS_REJECTED.labels(code=exc.code).inc()
            logger.info("Payment on bill %s rejected: %s", bill_id, exc)
            raise
        except Exception:
            db.rollback()
            raise

        db.refresh(payment)
        db.refresh(bill)
        PAYMENTS_RECORDED.labels(method=method.value).inc()
        logger.info(
            "Payment %s of %s recorded on %s (remaining %s)",
            payment.payment_number,
            amount,
            bill.bill_number,
            bill.remaining_amount,
        )
        notification = notifications.send_payment_confirmation(payment, bill, bill.customer)
        return {"payment": payment, "bill": bill, "notification": notification}

    @staticmethod
    def get(db: Session, payment_id: str):
        return get_or_404(db, Payment, payment_id, "Payment not found")

    @staticmethod
    def list(
        db: Session,
        customer_id: str | None,
        bill_id: str | None,
        method: str | None,
        date_from: datetime | None,
        date_to: datetime | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ):
        query = db.query(Payment)
        if customer_id:
            query = query.filter(Payment.customer_id == coerce_uuid(customer_id))
        if bill_id:
            query = query.filter(Payment.bill_id == coerce_uuid(bill_id))
        if method:
            query = query.filter(
                Payment.method == validate_enum(method, PaymentMethod, "method")
            )
        if date_from:
            query = query.filter(Payment.payment_date >= date_from)
        if date_to:
            query = query.filter(Payment.payment_date <= date_to)
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {
                "payment_date": Payment.payment_date,
                "created_at": Payment.created_at,
                "amount": Payment.amount,
            },
        )
        return apply_pagination(query, limit, offset).all()
