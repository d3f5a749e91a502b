"""Monthly bill generation.

One run turns the active customers into bills for a single (month, year).
The unique key on (customer_id, billing_month, billing_year) makes a run
idempotent: customers already billed for the period are skipped, and each
customer's bill is committed on its own so a run abandoned half-way can
simply be repeated.
"""

import logging
import time

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.metrics import BILL_GENERATION_FAILURES, BILLS_GENERATED, GENERATION_DURATION
from app.models.billing import Bill, BillingAuditAction
from app.models.customer import Customer
from app.services import customers as customers_service
from app.services import notifications, numbering
from app.services.billing._common import (
    BILL_PREFIX,
    _resolve_due_date,
    _validate_period,
)
from app.services.billing.audit import BillingAuditLog
from app.services.billing.balance import compute_balance
from app.services.errors import BillingError

logger = logging.getLogger(__name__)


class _AlreadyBilled(Exception):
    """A concurrent run billed this customer for the period first."""


def _billed_customer_ids(db: Session, billing_month: int, billing_year: int) -> set:
    stmt = select(Bill.customer_id).where(
        Bill.billing_month == billing_month, Bill.billing_year == billing_year
    )
    return set(db.execute(stmt).scalars())


def _bill_exists(db: Session, customer_id, billing_month: int, billing_year: int) -> bool:
    stmt = select(Bill.id).where(
        Bill.customer_id == customer_id,
        Bill.billing_month == billing_month,
        Bill.billing_year == billing_year,
    )
    return db.execute(stmt).first() is not None


class BillGeneration:
    @staticmethod
    def _create_bill(
        db: Session, customer: Customer, billing_month: int, billing_year: int, due_date
    ) -> Bill:
        amount = customer.monthly_fee
        previous_debt = customer.carried_debt
        balance = compute_balance(amount, previous_debt, 0, 0)
        stem = numbering.period_stem(BILL_PREFIX, billing_year, billing_month)

        def persist(number: str) -> Bill:
            bill = Bill(
                bill_number=number,
                customer_id=customer.id,
                billing_month=billing_month,
                billing_year=billing_year,
                due_date=due_date,
                amount=amount,
                previous_debt=previous_debt,
                compensation=0,
                total_amount=balance.total_amount,
                paid_amount=0,
                remaining_amount=balance.remaining_amount,
                status=balance.status,
            )
            db.add(bill)
            return bill

        def on_conflict(exc: IntegrityError) -> None:
            # A collision on the period key is not a numbering problem.
            if _bill_exists(db, customer.id, billing_month, billing_year):
                raise _AlreadyBilled() from exc

        return numbering.persist_with_retry(
            db,
            prefix=BILL_PREFIX,
            stem=stem,
            candidate=lambda: numbering.next_sequence_number(db, Bill.bill_number, stem),
            persist=persist,
            column=Bill.bill_number,
            constraint="uq_bills_bill_number",
            on_conflict=on_conflict,
        )

    @staticmethod
    def generate(
        db: Session, billing_month: int, billing_year: int, notify: bool = False
    ) -> dict:
        """Create this period's bill for every active customer not yet billed.

        Returns a summary with the created bills, the number of skipped
        customers and per-customer failures. Failures never abort the run.
        """
        billing_month, billing_year = _validate_period(billing_month, billing_year)
        started = time.perf_counter()
        due_date = _resolve_due_date(billing_month, billing_year)

        active = customers_service.Customers.list_active(db)
        billed = _billed_customer_ids(db, billing_month, billing_year)
        eligible = [customer for customer in active if customer.id not in billed]
        skipped = len(active) - len(eligible)
        created: list[Bill] = []
        failed: list[dict] = []

        for customer in eligible:
            customer_id = customer.id
            if customer.monthly_fee == 0 and customer.carried_debt == 0:
                skipped += 1
                continue
            try:
                bill = BillGeneration._create_bill(
                    db, customer, billing_month, billing_year, due_date
                )
                db.commit()
            except _AlreadyBilled:
                db.rollback()
                skipped += 1
                logger.info(
                    "Customer %s already billed for %02d/%s by another run",
                    customer_id,
                    billing_month,
                    billing_year,
                )
                continue
            except BillingError as exc:
                db.rollback()
                failed.append(
                    {"customer_id": customer_id, "code": exc.code, "message": exc.message}
                )
                BILL_GENERATION_FAILURES.labels(code=exc.code).inc()
                logger.warning("Bill generation failed for customer %s: %s", customer_id, exc)
                continue
            except SQLAlchemyError as exc:
                db.rollback()
                failed.append(
                    {"customer_id": customer_id, "code": "store_error", "message": str(exc)}
                )
                BILL_GENERATION_FAILURES.labels(code="store_error").inc()
                logger.warning("Bill generation failed for customer %s: %s", customer_id, exc)
                continue
            created.append(bill)
            BILLS_GENERATED.inc()

        total_amount = sum(bill.total_amount for bill in created)
        if not eligible:
            message = (
                f"No customers left to bill for {billing_month:02d}/{billing_year}"
            )
        else:
            message = (
                f"Created {len(created)} bills for {billing_month:02d}/{billing_year}"
            )

        BillingAuditLog.append(
            db,
            BillingAuditAction.generation,
            message,
            details={
                "billing_month": billing_month,
                "billing_year": billing_year,
                "customers_scanned": len(active),
                "created": len(created),
                "skipped": skipped,
                "failed": len(failed),
                "total_amount": total_amount,
            },
            commit=True,
        )

        notifications_sent = 0
        if notify:
            for bill in created:
                result = notifications.send_bill_notification(bill, bill.customer)
                if result.sent:
                    notifications_sent += 1

        GENERATION_DURATION.observe(time.perf_counter() - started)
        logger.info(
            "Generation %02d/%s: scanned=%s created=%s skipped=%s failed=%s total=%s",
            billing_month,
            billing_year,
            len(active),
            len(created),
            skipped,
            len(failed),
            total_amount,
        )
        return {
            "billing_month": billing_month,
            "billing_year": billing_year,
            "customers_scanned": len(active),
            "created": created,
            "created_count": len(created),
            "skipped": skipped,
            "failed": failed,
            "total_amount": total_amount,
            "message": message,
            "notifications_sent": notifications_sent,
        }
