from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.billing import (
    BillingAuditEntryRead,
    BillingStats,
    BillRead,
    CompensationUpdate,
    GenerationRequest,
    GenerationResponse,
    PaymentCreate,
    PaymentRead,
    PaymentRecordResponse,
    ResetRequest,
    ResetResponse,
)
from app.schemas.common import ListResponse
from app.services import billing as billing_service

router = APIRouter()


@router.post(
    "/billing/generate",
    response_model=GenerationResponse,
    status_code=status.HTTP_200_OK,
    tags=["billing"],
)
def generate_bills(payload: GenerationRequest, db: Session = Depends(get_db)):
    return billing_service.generation.generate(
        db, payload.billing_month, payload.billing_year, notify=payload.notify
    )


@router.get("/bills/{bill_id}", response_model=BillRead, tags=["bills"])
def get_bill(bill_id: str, db: Session = Depends(get_db)):
    return billing_service.bills.get(db, bill_id)


@router.get("/bills", response_model=ListResponse[BillRead], tags=["bills"])
def list_bills(
    customer_id: str | None = None,
    status: str | None = None,
    billing_month: int | None = Query(default=None, ge=1, le=12),
    billing_year: int | None = Query(default=None, ge=2000, le=9999),
    has_debt: bool | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return billing_service.bills.list_response(
        db,
        customer_id,
        status,
        billing_month,
        billing_year,
        has_debt,
        order_by,
        order_dir,
        limit,
        offset,
    )


@router.post(
    "/bills/{bill_id}/payments",
    response_model=PaymentRecordResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["payments"],
)
def record_payment(bill_id: str, payload: PaymentCreate, db: Session = Depends(get_db)):
    result = billing_service.payments.record(db, bill_id, payload)
    return {
        "payment": result["payment"],
        "bill": result["bill"],
        "notification": result["notification"].as_dict(),
    }


@router.patch("/bills/{bill_id}/compensation", response_model=BillRead, tags=["bills"])
def set_compensation(
    bill_id: str, payload: CompensationUpdate, db: Session = Depends(get_db)
):
    return billing_service.compensation.set_compensation(db, bill_id, payload.compensation)


@router.post("/bills/{bill_id}/reconcile", response_model=BillRead, tags=["bills"])
def reconcile_bill(bill_id: str, db: Session = Depends(get_db)):
    return billing_service.bills.reconcile(db, bill_id)


@router.get("/payments/{payment_id}", response_model=PaymentRead, tags=["payments"])
def get_payment(payment_id: str, db: Session = Depends(get_db)):
    return billing_service.payments.get(db, payment_id)


@router.get("/payments", response_model=ListResponse[PaymentRead], tags=["payments"])
def list_payments(
    customer_id: str | None = None,
    bill_id: str | None = None,
    method: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    order_by: str = Query(default="payment_date"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return billing_service.payments.list_response(
        db,
        customer_id,
        bill_id,
        method,
        date_from,
        date_to,
        order_by,
        order_dir,
        limit,
        offset,
    )


@router.get("/billing/stats", response_model=BillingStats, tags=["billing"])
def billing_stats(
    billing_month: int | None = Query(default=None, ge=1, le=12),
    billing_year: int | None = Query(default=None, ge=2000, le=9999),
    db: Session = Depends(get_db),
):
    return billing_service.bills.stats(db, billing_month, billing_year)


@router.get(
    "/billing/audit",
    response_model=ListResponse[BillingAuditEntryRead],
    tags=["billing"],
)
def list_audit_entries(
    action: str | None = None,
    bill_id: str | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return billing_service.audit_log.list_response(
        db, action, bill_id, order_by, order_dir, limit, offset
    )


@router.post("/billing/reset", response_model=ResetResponse, tags=["billing"])
def reset_ledger(payload: ResetRequest, db: Session = Depends(get_db)):
    return billing_service.bills.reset_period(
        db,
        payload.confirmation,
        billing_month=payload.billing_month,
        billing_year=payload.billing_year,
    )
