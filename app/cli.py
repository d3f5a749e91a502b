"""Operator commands for the billing ledger.

    python -m app.cli generate --month 10 --year 2026
    python -m app.cli record-payment <bill-id> 150000 --method transfer
    python -m app.cli set-compensation <bill-id> 50000
    python -m app.cli stats --month 10 --year 2026
    python -m app.cli reset --month 10 --year 2026 --confirm RESET-2026-10
"""

import argparse
import json
import sys
from datetime import UTC, datetime

from app.db import SessionLocal
from app.logging import configure_logging
from app.models.billing import PaymentMethod
from app.schemas.billing import PaymentCreate
from app.services import billing as billing_service
from app.services.errors import BillingError


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Billing ledger operations.")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    now = datetime.now(UTC)
    generate = subparsers.add_parser("generate", help="Generate bills for a period")
    generate.add_argument("--month", type=int, default=now.month)
    generate.add_argument("--year", type=int, default=now.year)
    generate.add_argument("--notify", action="store_true", help="Send bill notifications")

    payment = subparsers.add_parser("record-payment", help="Record a payment on a bill")
    payment.add_argument("bill_id")
    payment.add_argument("amount", type=int)
    payment.add_argument(
        "--method",
        default=PaymentMethod.cash.value,
        choices=[method.value for method in PaymentMethod],
    )
    payment.add_argument("--reference", default=None)
    payment.add_argument("--notes", default=None)
    payment.add_argument("--recorded-by", default="admin")

    compensation = subparsers.add_parser(
        "set-compensation", help="Set the compensation on a bill"
    )
    compensation.add_argument("bill_id")
    compensation.add_argument("compensation", type=int)

    stats = subparsers.add_parser("stats", help="Show bill statistics")
    stats.add_argument("--month", type=int, default=None)
    stats.add_argument("--year", type=int, default=None)

    reset = subparsers.add_parser("reset", help="Delete bills, payments and audit entries")
    reset.add_argument("--month", type=int, default=None)
    reset.add_argument("--year", type=int, default=None)
    reset.add_argument("--confirm", default="", help="Confirmation token")
    return parser.parse_args(argv)


def _bill_row(bill) -> dict:
    return {
        "id": str(bill.id),
        "bill_number": bill.bill_number,
        "total_amount": bill.total_amount,
        "paid_amount": bill.paid_amount,
        "remaining_amount": bill.remaining_amount,
        "status": bill.status.value,
    }


def run(args, db) -> dict:
    if args.command == "generate":
        summary = billing_service.generation.generate(
            db, args.month, args.year, notify=args.notify
        )
        return {
            **summary,
            "created": [bill.bill_number for bill in summary["created"]],
            "failed": [
                {**failure, "customer_id": str(failure["customer_id"])}
                for failure in summary["failed"]
            ],
        }
    if args.command == "record-payment":
        payload = PaymentCreate(
            amount=args.amount,
            method=PaymentMethod(args.method),
            reference_number=args.reference,
            notes=args.notes,
            recorded_by=args.recorded_by,
        )
        result = billing_service.payments.record(db, args.bill_id, payload)
        return {
            "payment_number": result["payment"].payment_number,
            "bill": _bill_row(result["bill"]),
            "notification": result["notification"].as_dict(),
        }
    if args.command == "set-compensation":
        bill = billing_service.compensation.set_compensation(
            db, args.bill_id, args.compensation
        )
        return _bill_row(bill)
    if args.command == "stats":
        return billing_service.bills.stats(db, args.month, args.year)
    if args.command == "reset":
        return billing_service.bills.reset_period(
            db, args.confirm, billing_month=args.month, billing_year=args.year
        )
    raise ValueError(f"Unknown command {args.command}")


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    with SessionLocal() as db:
        try:
            result = run(args, db)
        except BillingError as exc:
            print(json.dumps({"error": exc.as_dict()}, default=str), file=sys.stderr)
            return 1
    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
