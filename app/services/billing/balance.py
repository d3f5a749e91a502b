"""Bill balance arithmetic.

All amounts are integers in the smallest currency unit. Nothing in here
touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.models.billing import BillStatus
from app.services.errors import InvalidAmountError


@dataclass(frozen=True)
class Balance:
    total_amount: int
    remaining_amount: int
    status: BillStatus


def _require_amount(value: object, label: str) -> int:
    # bool is an int subclass; reject it along with floats and Decimals.
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmountError(
            f"{label} must be an integer amount in the smallest currency unit",
            field=label,
        )
    if value < 0:
        raise InvalidAmountError(f"{label} cannot be negative", field=label, value=value)
    return value


def derive_status(remaining_amount: int, paid_amount: int) -> BillStatus:
    if remaining_amount == 0:
        return BillStatus.paid
    if paid_amount > 0:
        return BillStatus.partial
    return BillStatus.unpaid


def compute_balance(
    amount: int, previous_debt: int, compensation: int, paid_amount: int
) -> Balance:
    """Compute total, remaining and status for a bill.

    total = max(0, amount + previous_debt - compensation)
    remaining = max(0, total - paid_amount)
    """
    amount = _require_amount(amount, "amount")
    previous_debt = _require_amount(previous_debt, "previous_debt")
    compensation = _require_amount(compensation, "compensation")
    paid_amount = _require_amount(paid_amount, "paid_amount")

    total_amount = max(0, amount + previous_debt - compensation)
    remaining_amount = max(0, total_amount - paid_amount)
    return Balance(
        total_amount=total_amount,
        remaining_amount=remaining_amount,
        status=derive_status(remaining_amount, paid_amount),
    )


def verify_bill(bill, payments_total: int | None = None) -> list[str]:
    """Return the balance invariants the bill currently violates.

    An empty list means the stored amounts agree with ``compute_balance``
    and, when ``payments_total`` is given, that ``paid_amount`` equals the
    sum of the bill's payment rows.
    """
    problems: list[str] = []
    expected = compute_balance(
        bill.amount, bill.previous_debt, bill.compensation, bill.paid_amount
    )
    if bill.total_amount != expected.total_amount:
        problems.append(
            f"total_amount is {bill.total_amount}, expected {expected.total_amount}"
        )
    if bill.remaining_amount != expected.remaining_amount:
        problems.append(
            f"remaining_amount is {bill.remaining_amount}, "
            f"expected {expected.remaining_amount}"
        )
    if bill.status != expected.status:
        current = bill.status.value if bill.status else None
        problems.append(f"status is {current}, expected {expected.status.value}")
    if payments_total is not None and payments_total != bill.paid_amount:
        problems.append(
            f"paid_amount is {bill.paid_amount}, payments sum to {payments_total}"
        )
    return problems
