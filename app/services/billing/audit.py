"""Append-only billing audit log.

Entries exist for operational traceability only; balances are never derived
from them. There is deliberately no update or delete method; the only path
that removes entries is the confirmed ledger reset.
"""

import logging
from typing import Any

from sqlalchemy.orm import Session

from app.models.billing import BillingAuditAction, BillingAuditEntry
from app.services.common import (
    ListResponseMixin,
    apply_ordering,
    apply_pagination,
    coerce_uuid,
    validate_enum,
)

logger = logging.getLogger(__name__)


class BillingAuditLog(ListResponseMixin):
    @staticmethod
    def append(
        db: Session,
        action: BillingAuditAction | str,
        description: str,
        *,
        bill_id=None,
        details: dict[str, Any] | None = None,
        commit: bool = False,
    ) -> BillingAuditEntry:
        """Add an entry to the current transaction.

        Callers normally append inside their own unit of work and commit it
        together with the change being recorded.
        """
        entry = BillingAuditEntry(
            action=validate_enum(action, BillingAuditAction, "action"),
            description=description,
            bill_id=coerce_uuid(bill_id),
            details=details,
        )
        db.add(entry)
        if commit:
            db.commit()
            db.refresh(entry)
        logger.debug("audit %s: %s", entry.action.value, description)
        return entry

    @staticmethod
    def list(
        db: Session,
        action: str | None,
        bill_id: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ):
        query = db.query(BillingAuditEntry)
        if action:
            query = query.filter(
                BillingAuditEntry.action
                == validate_enum(action, BillingAuditAction, "action")
            )
        if bill_id:
            query = query.filter(BillingAuditEntry.bill_id == coerce_uuid(bill_id))
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {"created_at": BillingAuditEntry.created_at, "action": BillingAuditEntry.action},
        )
        return apply_pagination(query, limit, offset).all()
