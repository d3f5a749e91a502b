from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.common import ListResponse
from app.schemas.customer import (
    CarriedDebtUpdate,
    CustomerCreate,
    CustomerRead,
    CustomerStatusUpdate,
)
from app.services import customers as customers_service

router = APIRouter(prefix="/customers", tags=["customers"])


@router.post("", response_model=CustomerRead, status_code=status.HTTP_201_CREATED)
def create_customer(payload: CustomerCreate, db: Session = Depends(get_db)):
    return customers_service.customers.create(db, payload)


@router.get("/{customer_id}", response_model=CustomerRead)
def get_customer(customer_id: str, db: Session = Depends(get_db)):
    return customers_service.customers.get(db, customer_id)


@router.get("", response_model=ListResponse[CustomerRead])
def list_customers(
    status: str | None = None,
    search: str | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return customers_service.customers.list_response(
        db, status, search, order_by, order_dir, limit, offset
    )


@router.patch("/{customer_id}/debt", response_model=CustomerRead)
def set_carried_debt(
    customer_id: str, payload: CarriedDebtUpdate, db: Session = Depends(get_db)
):
    return customers_service.customers.set_carried_debt(
        db, customer_id, payload.carried_debt, reason=payload.reason
    )


@router.patch("/{customer_id}/status", response_model=CustomerRead)
def set_customer_status(
    customer_id: str, payload: CustomerStatusUpdate, db: Session = Depends(get_db)
):
    return customers_service.customers.set_status(db, customer_id, payload.status)
