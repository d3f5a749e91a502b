from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.billing import BillingAuditAction, BillStatus, PaymentMethod


class BillRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    bill_number: str
    customer_id: UUID
    billing_month: int
    billing_year: int
    due_date: date
    amount: int
    previous_debt: int
    compensation: int
    total_amount: int
    paid_amount: int
    remaining_amount: int
    status: BillStatus
    paid_at: datetime | None = None
    on_hold: bool = False
    hold_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class PaymentCreate(BaseModel):
    # strict keeps floats and numeric strings out of money fields
    amount: int = Field(strict=True)
    method: PaymentMethod = PaymentMethod.cash
    payment_date: datetime | None = None
    reference_number: str | None = Field(default=None, max_length=100)
    notes: str | None = None
    recorded_by: str | None = Field(default="admin", max_length=100)


class PaymentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    payment_number: str
    bill_id: UUID
    customer_id: UUID
    amount: int
    method: PaymentMethod
    payment_date: datetime
    reference_number: str | None = None
    notes: str | None = None
    recorded_by: str | None = None
    created_at: datetime


class NotificationRead(BaseModel):
    sent: bool
    message_id: str | None = None
    error: str | None = None


class PaymentRecordResponse(BaseModel):
    payment: PaymentRead
    bill: BillRead
    notification: NotificationRead | None = None


class CompensationUpdate(BaseModel):
    compensation: int = Field(strict=True)


class GenerationRequest(BaseModel):
    billing_month: int = Field(ge=1, le=12)
    billing_year: int = Field(ge=2000, le=9999)
    notify: bool = False


class GenerationFailure(BaseModel):
    customer_id: UUID
    code: str
    message: str


class GenerationResponse(BaseModel):
    billing_month: int
    billing_year: int
    customers_scanned: int
    created: list[BillRead] = Field(default_factory=list)
    created_count: int
    skipped: int
    failed: list[GenerationFailure] = Field(default_factory=list)
    total_amount: int
    message: str
    notifications_sent: int = 0


class BillingStats(BaseModel):
    total_bills: int
    unpaid: int
    partial: int
    paid: int
    on_hold: int
    total_amount: int
    paid_amount: int
    outstanding_amount: int


class ResetRequest(BaseModel):
    confirmation: str
    billing_month: int | None = Field(default=None, ge=1, le=12)
    billing_year: int | None = Field(default=None, ge=2000, le=9999)


class ResetResponse(BaseModel):
    scope: str
    bills_deleted: int
    payments_deleted: int
    audit_entries_deleted: int


class BillingAuditEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    action: BillingAuditAction
    description: str
    bill_id: UUID | None = None
    details: dict | None = None
    created_at: datetime
