"""Structured listing filters resolved against whitelisted columns."""

import operator
from collections import namedtuple
from datetime import date, datetime

from sqlalchemy import and_, or_

from errors import ValidationError
from models import Borrow, BorrowStatus, Reservation, ReservationStatus

Filter = namedtuple("Filter", "field op value")

OPERATORS = {
    "eq": operator.eq,
    "ne": operator.ne,
    "lt": operator.lt,
    "le": operator.le,
    "gt": operator.gt,
    "ge": operator.ge,
    "in": lambda column, value: column.in_(value),
}

BORROW_FIELDS = {
    "status": Borrow.status,
    "borrow_date": Borrow.borrow_date,
    "due_date": Borrow.due_date,
    "return_date": Borrow.return_date,
    "user_id": Borrow.user_id,
    "book_id": Borrow.book_id,
}

RESERVATION_FIELDS = {
    "status": Reservation.status,
    "reservation_date": Reservation.reservation_date,
    "expiry_date": Reservation.expiry_date,
    "user_id": Reservation.user_id,
    "book_id": Reservation.book_id,
}


def clause(fields, item):
    if item.op == "any":
        return or_(*[and_(*[clause(fields, f) for f in group]) for group in item.value])

    column = fields.get(item.field)
    if column is None:
        raise ValidationError(f"Unknown filter field: {item.field!r}.")
    compare = OPERATORS.get(item.op)
    if compare is None:
        raise ValidationError(f"Unknown filter operator: {item.op!r}.")
    return compare(column, item.value)


def apply_filters(query, fields, filters):
    for item in filters:
        query = query.filter(clause(fields, item))
    return query


def parse_date(value, label="date"):
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except (AttributeError, ValueError):
        raise ValidationError(f"Invalid {label}: {value!r}. Use YYYY-MM-DD.")


# ----------------------------
# Borrow listing filters
# ----------------------------
def borrow_filters(status="all", date_from="", date_to="", today=None):
    today = today or date.today()
    filters = []

    status = (status or "all").strip().lower()
    if status == "overdue":
        filters.append(Filter("status", "eq", BorrowStatus.BORROWED))
        filters.append(Filter("due_date", "lt", today))
    elif status in (BorrowStatus.BORROWED, BorrowStatus.RETURNED, BorrowStatus.LOST):
        filters.append(Filter("status", "eq", status))
    elif status != "all":
        raise ValidationError(f"Unknown borrow status filter: {status!r}.")

    if date_from:
        filters.append(Filter("borrow_date", "ge", parse_date(date_from, "start date")))
    if date_to:
        filters.append(Filter("borrow_date", "le", parse_date(date_to, "end date")))
    return filters


# ----------------------------
# Reservation listing filters
# ----------------------------
def reservation_filters(status="all", today=None):
    """Filters on the displayed status, so ``expired`` also matches stale active rows."""
    today = today or date.today()
    status = (status or "all").strip().lower()

    if status == "all":
        return []
    if status == ReservationStatus.ACTIVE:
        return [
            Filter("status", "eq", ReservationStatus.ACTIVE),
            Filter("expiry_date", "ge", today),
        ]
    if status == ReservationStatus.EXPIRED:
        return [Filter(None, "any", [
            [Filter("status", "eq", ReservationStatus.EXPIRED)],
            [
                Filter("status", "eq", ReservationStatus.ACTIVE),
                Filter("expiry_date", "lt", today),
            ],
        ])]
    if status in (ReservationStatus.FULFILLED, ReservationStatus.CANCELLED):
        return [Filter("status", "eq", status)]
    raise ValidationError(f"Unknown reservation status filter: {status!r}.")
