from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.customer import CustomerStatus


class CustomerBase(BaseModel):
    name: str = Field(min_length=1, max_length=160)
    phone: str | None = Field(default=None, max_length=40)
    address: str | None = None
    monthly_fee: int = Field(default=0, ge=0, strict=True)
    carried_debt: int = Field(default=0, ge=0, strict=True)
    status: CustomerStatus = CustomerStatus.active


class CustomerCreate(CustomerBase):
    pass


class CustomerRead(CustomerBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
    updated_at: datetime


class CarriedDebtUpdate(BaseModel):
    carried_debt: int = Field(ge=0, strict=True)
    reason: str | None = Field(default=None, max_length=255)


class CustomerStatusUpdate(BaseModel):
    status: CustomerStatus
