import logging
from datetime import UTC, datetime

from app.celery_app import celery_app
from app.db import SessionLocal
from app.logging import configure_logging
from app.services import billing as billing_service

logger = logging.getLogger(__name__)


def _summary_payload(summary: dict) -> dict:
    return {
        "billing_month": summary["billing_month"],
        "billing_year": summary["billing_year"],
        "customers_scanned": summary["customers_scanned"],
        "created": [bill.bill_number for bill in summary["created"]],
        "created_count": summary["created_count"],
        "skipped": summary["skipped"],
        "failed": [
            {**failure, "customer_id": str(failure["customer_id"])}
            for failure in summary["failed"]
        ],
        "total_amount": summary["total_amount"],
        "message": summary["message"],
        "notifications_sent": summary["notifications_sent"],
    }


@celery_app.task(name="app.tasks.billing.generate_monthly_bills")
def generate_monthly_bills(
    billing_month: int | None = None,
    billing_year: int | None = None,
    notify: bool = False,
):
    """Run bill generation, defaulting to the current month.

    Safe to re-deliver: a repeated run only bills customers the earlier
    run did not reach.
    """
    configure_logging()
    now = datetime.now(UTC)
    if billing_month is None:
        billing_month = now.month
    if billing_year is None:
        billing_year = now.year
    session = SessionLocal()
    try:
        summary = billing_service.generation.generate(
            session, billing_month, billing_year, notify=notify
        )
        return _summary_payload(summary)
    except Exception:
        session.rollback()
        logger.exception(
            "Bill generation task failed for %02d/%s", billing_month, billing_year
        )
        raise
    finally:
        session.close()
