from app.models.billing import (  # noqa: F401
    Bill,
    BillingAuditAction,
    BillingAuditEntry,
    BillStatus,
    Payment,
    PaymentMethod,
)
from app.models.customer import Customer, CustomerStatus  # noqa: F401
