"""Document number allocation for bills and payments.

Bill numbers are ``PREFIX-YYYY-MM-NNNN``: the highest counter already issued
under the stem plus one. That scan is only a hint. The unique constraint on
the number column decides, and a collision is retried with a fresh scan
after an exponential backoff with jitter. No state is kept between calls.
"""

from __future__ import annotations

import logging
import random
import re
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.metrics import SEQUENCE_COLLISIONS
from app.services.errors import SequenceExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

COUNTER_PADDING = 4


def _format_number(prefix: str | None, padding: int | None, value: int) -> str:
    prefix_value = prefix or ""
    pad = max(int(padding or 0), 0)
    if pad > 0:
        return f"{prefix_value}{value:0{pad}d}"
    return f"{prefix_value}{value}"


def period_stem(prefix: str, year: int, month: int) -> str:
    return f"{prefix}-{year:04d}-{month:02d}"


def _counter_pattern(stem: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(stem)}-(\d{{{COUNTER_PADDING},}})$")


def next_sequence_number(db: Session, column, stem: str) -> str:
    """Return the next ``stem-NNNN`` number visible to this session."""
    pattern = _counter_pattern(stem)
    highest = 0
    existing = db.execute(select(column).where(column.like(f"{stem}-%"))).scalars()
    for number in existing:
        match = pattern.match(number or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return _format_number(f"{stem}-", COUNTER_PADDING, highest + 1)


def allocate(db: Session, column, prefix: str, year: int, month: int) -> str:
    return next_sequence_number(db, column, period_stem(prefix, year, month))


def payment_number(at: datetime | None = None) -> str:
    """Timestamped payment number, e.g. ``PAY-20261019-143015-1760884215123456-0427``.

    Dense numbering is traded for collision resistance: the microsecond
    epoch plus a random suffix makes concurrent recorders practically never
    collide, and the retry loop covers the rest.
    """
    at = at or datetime.now(UTC)
    stamp = time.time_ns() // 1000
    suffix = random.randint(0, 9999)
    return f"PAY-{at:%Y%m%d}-{at:%H%M%S}-{stamp}-{suffix:04d}"


def is_number_collision(exc: IntegrityError, column, constraint: str) -> bool:
    """Whether ``exc`` is a duplicate on the number column and not another violation.

    PostgreSQL (psycopg) names the violated constraint in ``diag``. SQLite
    only lists the offending columns, so fall back to the message text.
    """
    diag = getattr(exc.orig, "diag", None)
    constraint_name = getattr(diag, "constraint_name", None)
    if constraint_name:
        return constraint_name == constraint
    message = str(exc.orig)
    if constraint in message:
        return True
    qualified = f"{column.class_.__tablename__}.{column.key}"
    return "UNIQUE" in message.upper() and message.rstrip().endswith(qualified)


def backoff_delay(
    attempt: int,
    base: float | None = None,
    cap: float | None = None,
    jitter: float | None = None,
) -> float:
    base = settings.sequence_backoff_base_seconds if base is None else base
    cap = settings.sequence_backoff_cap_seconds if cap is None else cap
    jitter = settings.sequence_backoff_jitter_seconds if jitter is None else jitter
    exponential = min(base * (2 ** max(attempt - 1, 0)), cap)
    return exponential + random.uniform(0, max(jitter, 0.0))


def persist_with_retry(
    db: Session,
    *,
    prefix: str,
    stem: str,
    candidate: Callable[[], str],
    persist: Callable[[str], T],
    column,
    constraint: str,
    on_conflict: Callable[[IntegrityError], None] | None = None,
    max_attempts: int | None = None,
) -> T:
    """Persist an entity under a freshly allocated number, retrying collisions.

    Each attempt runs in a SAVEPOINT so a unique violation only discards
    that attempt, not the caller's surrounding transaction. ``on_conflict``
    runs after every violation and may raise to stop retrying when the
    collision was on some other unique key. Only violations of
    ``constraint`` on ``column`` are retried; any other integrity error
    is re-raised at once.

    Raises:
        SequenceExhaustedError: every attempt collided.
        IntegrityError: a violation other than a duplicate number.
    """
    attempts = max_attempts or settings.sequence_max_attempts
    last_error: IntegrityError | None = None
    for attempt in range(1, attempts + 1):
        number = candidate()
        savepoint = db.begin_nested()
        try:
            entity = persist(number)
            db.flush()
        except IntegrityError as exc:
            savepoint.rollback()
            last_error = exc
            if on_conflict is not None:
                on_conflict(exc)
            if not is_number_collision(exc, column, constraint):
                raise
            SEQUENCE_COLLISIONS.labels(prefix=prefix).inc()
            logger.warning(
                "Number %s collided under %s (attempt %s/%s)",
                number,
                stem,
                attempt,
                attempts,
            )
            if attempt < attempts:
                time.sleep(backoff_delay(attempt))
            continue
        savepoint.commit()
        return entity

    logger.error("Exhausted %s attempts allocating a number under %s", attempts, stem)
    raise SequenceExhaustedError(stem, attempts) from last_error
