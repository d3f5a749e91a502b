import enum
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


class BillStatus(enum.Enum):
    unpaid = "unpaid"
    partial = "partial"
    paid = "paid"


class PaymentMethod(enum.Enum):
    cash = "cash"
    transfer = "transfer"
    card = "card"
    ewallet = "ewallet"


class BillingAuditAction(enum.Enum):
    generation = "generation"
    payment = "payment"
    compensation_edit = "compensation_edit"
    debt_adjustment = "debt_adjustment"
    reconciliation = "reconciliation"
    reset = "reset"


class Bill(Base):
    __tablename__ = "bills"
    __table_args__ = (
        UniqueConstraint("bill_number", name="uq_bills_bill_number"),
        UniqueConstraint(
            "customer_id",
            "billing_month",
            "billing_year",
            name="uq_bills_customer_period",
        ),
        CheckConstraint("billing_month BETWEEN 1 AND 12", name="ck_bills_billing_month"),
        CheckConstraint("amount >= 0", name="ck_bills_amount_non_negative"),
        CheckConstraint("previous_debt >= 0", name="ck_bills_previous_debt_non_negative"),
        CheckConstraint("compensation >= 0", name="ck_bills_compensation_non_negative"),
        CheckConstraint("total_amount >= 0", name="ck_bills_total_non_negative"),
        CheckConstraint("paid_amount >= 0", name="ck_bills_paid_non_negative"),
        CheckConstraint("remaining_amount >= 0", name="ck_bills_remaining_non_negative"),
        Index("ix_bills_period", "billing_year", "billing_month"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    bill_number: Mapped[str] = mapped_column(String(80), nullable=False)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("customers.id"), nullable=False
    )
    billing_month: Mapped[int] = mapped_column(Integer, nullable=False)
    billing_year: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    previous_debt: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    compensation: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    paid_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    remaining_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[BillStatus] = mapped_column(
        Enum(BillStatus, name="bill_status"), nullable=False, default=BillStatus.unpaid
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Set when an invariant check fails; blocks writes until reconciled.
    on_hold: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hold_reason: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    customer = relationship("Customer", back_populates="bills")
    payments = relationship(
        "Payment", back_populates="bill", order_by="Payment.payment_date"
    )


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("payment_number", name="uq_payments_payment_number"),
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    payment_number: Mapped[str] = mapped_column(String(80), nullable=False)
    bill_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bills.id"), nullable=False, index=True
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("customers.id"), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(
        Enum(PaymentMethod, name="payment_method"),
        nullable=False,
        default=PaymentMethod.cash,
    )
    payment_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    reference_number: Mapped[str | None] = mapped_column(String(100))
    notes: Mapped[str | None] = mapped_column(Text)
    recorded_by: Mapped[str | None] = mapped_column(String(100))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    bill = relationship("Bill", back_populates="payments")


class BillingAuditEntry(Base):
    __tablename__ = "billing_audit_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    action: Mapped[BillingAuditAction] = mapped_column(
        Enum(BillingAuditAction, name="billing_audit_action"), nullable=False
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    bill_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("bills.id"), index=True
    )
    details: Mapped[dict | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
