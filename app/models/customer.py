import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Enum,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


class CustomerStatus(enum.Enum):
    active = "active"
    suspended = "suspended"
    terminated = "terminated"


class Customer(Base):
    """Subscriber record read by bill generation.

    Owned by the customer-management side of the application. The billing
    ledger only reads it, except for ``carried_debt`` which operators set
    explicitly and generation snapshots into each new bill.
    """

    __tablename__ = "customers"
    __table_args__ = (
        CheckConstraint("monthly_fee >= 0", name="ck_customers_monthly_fee_non_negative"),
        CheckConstraint("carried_debt >= 0", name="ck_customers_carried_debt_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(40))
    address: Mapped[str | None] = mapped_column(Text)
    monthly_fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    carried_debt: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    status: Mapped[CustomerStatus] = mapped_column(
        Enum(CustomerStatus, name="customer_status"),
        nullable=False,
        default=CustomerStatus.active,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    bills = relationship("Bill", back_populates="customer")
