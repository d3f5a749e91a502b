"""Common helper functions for the service layer.

- UUID handling
- Query ordering and pagination
- Enum validation
- Entity retrieval
- List response envelopes
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, TypeVar

from app.services.errors import NotFoundError, ValidationError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

T = TypeVar("T")


def coerce_uuid(value):
    """Convert value to UUID, returning None if value is None.

    Raises:
        NotFoundError: the value is not a UUID, so no row can match it
    """
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise NotFoundError(f"No record with id {value}", id=str(value)) from exc


def apply_ordering(query, order_by: str, order_dir: str, allowed_columns: dict):
    """Apply ordering to a query with validation.

    Raises:
        ValidationError: order_by is not in allowed_columns
    """
    if order_by not in allowed_columns:
        raise ValidationError(
            f"Invalid order_by. Allowed: {', '.join(sorted(allowed_columns))}",
            field="order_by",
        )
    column = allowed_columns[order_by]
    if order_dir == "desc":
        return query.order_by(column.desc())
    return query.order_by(column.asc())


def apply_pagination(query, limit: int, offset: int):
    return query.limit(limit).offset(offset)


def validate_enum(value, enum_cls, label: str):
    """Validate and convert a value to an enum member, passing None through."""
    if value is None:
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"Invalid {label}. Allowed: {allowed}", field=label, value=str(value)
        ) from exc


def get_by_id(db: Session, model: type[T], value, **kwargs) -> T | None:
    if value is None:
        return None
    return db.get(model, coerce_uuid(value), **kwargs)


def get_or_404(db: Session, model: type[T], id, detail: str | None = None, **options) -> T:
    entity = get_by_id(db, model, id, **options)
    if not entity:
        raise NotFoundError(detail or f"{model.__name__} not found", id=str(id))
    return entity


def list_response(items: list, limit: int, offset: int) -> dict:
    return {"items": items, "count": len(items), "limit": limit, "offset": offset}


class ListResponseMixin:
    @classmethod
    def list_response(cls, db, *args, **kwargs):
        if "limit" in kwargs and "offset" in kwargs:
            limit = kwargs["limit"]
            offset = kwargs["offset"]
            items = cls.list(db, *args, **kwargs)
        else:
            if len(args) < 2:
                raise ValueError("limit and offset are required for list responses")
            *list_args, limit, offset = args
            items = cls.list(db, *list_args, limit=limit, offset=offset, **kwargs)
        return list_response(items, limit, offset)
