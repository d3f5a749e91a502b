"""Billing ledger services package.

This package provides bill generation, payment recording, compensation
edits, bill queries and the billing audit log.

Import patterns:
    from app.services import billing as billing_service
    billing_service.payments.record(db, bill_id, payload)

    from app.services.billing import Payments, compute_balance
"""

from app.services.billing.audit import BillingAuditLog
from app.services.billing.balance import Balance, compute_balance, derive_status, verify_bill
from app.services.billing.bills import Bills, reset_confirmation_token
from app.services.billing.compensation import CompensationAdjuster
from app.services.billing.generation import BillGeneration
from app.services.billing.payments import Payments

# Singleton instances for service access
audit_log = BillingAuditLog()
bills = Bills()
compensation = CompensationAdjuster()
generation = BillGeneration()
payments = Payments()

__all__ = [
    "Balance",
    "BillGeneration",
    "BillingAuditLog",
    "Bills",
    "CompensationAdjuster",
    "Payments",
    "audit_log",
    "bills",
    "compensation",
    "compute_balance",
    "derive_status",
    "generation",
    "payments",
    "reset_confirmation_token",
    "verify_bill",
]
