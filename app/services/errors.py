"""Structured error kinds raised by the billing ledger.

Every error carries a stable ``code`` plus a human-readable ``message`` and
optional ``details``. They subclass ``HTTPException`` so the API error
handlers render them as ``{"code", "message", "details", "request_id"}``
without per-route mapping; CLI and task callers can switch on ``code``.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException


class BillingError(HTTPException):
    status_code_default = 400
    code = "billing_error"

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details or None
        super().__init__(
            status_code=self.status_code_default,
            detail={"code": self.code, "message": message, "details": self.details},
        )

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def as_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(BillingError):
    code = "validation_error"


class InvalidAmountError(ValidationError):
    code = "invalid_amount"


class ConfirmationRequiredError(ValidationError):
    code = "confirmation_required"


class NotFoundError(BillingError):
    status_code_default = 404
    code = "not_found"


class OverpaymentError(BillingError):
    status_code_default = 409
    code = "overpayment"


class ConcurrentUpdateError(BillingError):
    status_code_default = 409
    code = "concurrent_update"


class BillOnHoldError(BillingError):
    status_code_default = 409
    code = "bill_on_hold"


class SequenceExhaustedError(BillingError):
    status_code_default = 503
    code = "sequence_exhausted"

    def __init__(self, stem: str, attempts: int):
        self.stem = stem
        self.attempts = attempts
        super().__init__(
            f"Could not allocate a unique number for {stem} after {attempts} attempts",
            stem=stem,
            attempts=attempts,
        )


class LedgerIntegrityError(BillingError):
    status_code_default = 500
    code = "ledger_integrity"
