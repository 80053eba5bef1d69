# Overview: Per-day order number allocation.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import OrderSequence
from ..time_utils import day_key, utcnow


def format_order_number(prefix: str, key: str, number: int, pad: int = 4) -> str:
    return f"{prefix}{key}{number:0{pad}d}"


def next_order_number(*, now: datetime | None = None, prefix: str | None = None, pad: int = 4) -> str:
    """
    Atomically allocate the next order number for the calendar day of now.

    Format: {prefix}{YYYYMMDD}{NNNN}, the first order of a day being 0001.

    The counter row is advanced with a single UPDATE; the first allocation
    of a day inserts the row. A concurrent first insert surfaces as
    IntegrityError from the flush, and the caller retries the whole unit of
    work. Does not commit.
    """
    key = day_key(now or utcnow())
    if prefix is None:
        prefix = current_app.config.get("ORDER_NUMBER_PREFIX", "EA")

    stmt = (
        update(OrderSequence)
        .where(OrderSequence.day_key == key)
        .values(next_number=OrderSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(OrderSequence.next_number)
            .filter_by(day_key=key)
            .scalar()
        )
        number = current - 1
    else:
        db.session.add(OrderSequence(day_key=key, next_number=2))
        db.session.flush()
        number = 1

    return format_order_number(prefix, key, number, pad)
