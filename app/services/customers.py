"""Customer store consumed by bill generation.

Generation only reads customers. The one write the ledger cares about is
``set_carried_debt``, an explicit operator action that is audited.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.billing import BillingAuditAction
from app.models.customer import Customer, CustomerStatus
from app.schemas.customer import CustomerCreate
from app.services.billing.audit import BillingAuditLog
from app.services.billing.balance import _require_amount
from app.services.common import (
    ListResponseMixin,
    apply_ordering,
    apply_pagination,
    get_or_404,
    validate_enum,
)

logger = logging.getLogger(__name__)


class Customers(ListResponseMixin):
    @staticmethod
    def create(db: Session, payload: CustomerCreate):
        customer = Customer(**payload.model_dump())
        db.add(customer)
        db.commit()
        db.refresh(customer)
        return customer

    @staticmethod
    def get(db: Session, customer_id: str):
        return get_or_404(db, Customer, customer_id, "Customer not found")

    @staticmethod
    def list(
        db: Session,
        status: str | None,
        search: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ):
        query = db.query(Customer)
        if status:
            query = query.filter(
                Customer.status == validate_enum(status, CustomerStatus, "status")
            )
        if search:
            query = query.filter(Customer.name.ilike(f"%{search}%"))
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {"created_at": Customer.created_at, "name": Customer.name},
        )
        return apply_pagination(query, limit, offset).all()

    @staticmethod
    def list_active(db: Session) -> list[Customer]:
        stmt = (
            select(Customer)
            .where(Customer.status == CustomerStatus.active)
            .order_by(Customer.created_at, Customer.id)
        )
        return list(db.execute(stmt).scalars())

    @staticmethod
    def set_carried_debt(
        db: Session, customer_id: str, carried_debt: int, reason: str | None = None
    ):
        """Set the debt the customer carries into their next bill.

        Bills already issued keep the debt they snapshotted.
        """
        carried_debt = _require_amount(carried_debt, "carried_debt")
        customer = Customers.get(db, customer_id)
        old_value = customer.carried_debt
        customer.carried_debt = carried_debt
        BillingAuditLog.append(
            db,
            BillingAuditAction.debt_adjustment,
            f"Carried debt for {customer.name} changed from {old_value} to {carried_debt}",
            details={
                "customer_id": str(customer.id),
                "old_carried_debt": old_value,
                "new_carried_debt": carried_debt,
                "reason": reason,
            },
        )
        db.commit()
        db.refresh(customer)
        logger.info(
            "Carried debt for customer %s set from %s to %s",
            customer.id,
            old_value,
            carried_debt,
        )
        return customer

    @staticmethod
    def set_status(db: Session, customer_id: str, status):
        customer = Customers.get(db, customer_id)
        customer.status = validate_enum(status, CustomerStatus, "status")
        db.commit()
        db.refresh(customer)
        return customer


customers = Customers()
