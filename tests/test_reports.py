from datetime import date, timedelta

import pytest

import reports
from conftest import TODAY
from errors import ValidationError
from filters import Filter, BORROW_FIELDS, borrow_filters, clause, parse_date, reservation_filters
from models import BorrowStatus, ReservationStatus


@pytest.fixture
def loans(factory):
    student = factory.user()
    on_time = factory.borrow(student, factory.book(), borrow_date=TODAY - timedelta(days=3))
    late = factory.borrow(
        student, factory.book(),
        borrow_date=TODAY - timedelta(days=20), due_date=TODAY - timedelta(days=6),
    )
    returned = factory.borrow(
        student, factory.book(),
        borrow_date=TODAY - timedelta(days=40), status=BorrowStatus.RETURNED,
        return_date=TODAY - timedelta(days=30),
    )
    lost = factory.borrow(
        student, factory.book(),
        borrow_date=TODAY - timedelta(days=60), status=BorrowStatus.LOST,
    )
    return {"on_time": on_time, "late": late, "returned": returned, "lost": lost}


# ----------------------------
# Filters
# ----------------------------
def test_overdue_filter(loans):
    rows = reports.list_borrows(borrow_filters("overdue", today=TODAY), TODAY)

    assert [row["id"] for row in rows] == [loans["late"].id]
    assert rows[0]["is_overdue"] is True
    assert rows[0]["days_overdue"] == 6
    assert rows[0]["calculated_fine"] == "3.00"


@pytest.mark.parametrize("status, key", [
    ("returned", "returned"),
    ("lost", "lost"),
])
def test_status_filter(loans, status, key):
    rows = reports.list_borrows(borrow_filters(status, today=TODAY), TODAY)

    assert [row["id"] for row in rows] == [loans[key].id]
    assert rows[0]["calculated_fine"] == "0.00"


def test_borrowed_filter_includes_overdue(loans):
    rows = reports.list_borrows(borrow_filters("borrowed", today=TODAY), TODAY)

    assert {row["id"] for row in rows} == {loans["on_time"].id, loans["late"].id}


def test_date_range_filter(loans):
    filters = borrow_filters(
        "all",
        (TODAY - timedelta(days=45)).isoformat(),
        (TODAY - timedelta(days=10)).isoformat(),
        TODAY,
    )

    rows = reports.list_borrows(filters, TODAY)

    assert {row["id"] for row in rows} == {loans["late"].id, loans["returned"].id}


def test_all_lists_newest_first(loans):
    rows = reports.list_borrows(borrow_filters(today=TODAY), TODAY)

    assert [row["id"] for row in rows] == [
        loans["on_time"].id, loans["late"].id, loans["returned"].id, loans["lost"].id
    ]


def test_bad_filter_values(app):
    with pytest.raises(ValidationError):
        borrow_filters("overdue", date_from="02/03/2026", today=TODAY)
    with pytest.raises(ValidationError):
        borrow_filters("missing", today=TODAY)
    with pytest.raises(ValidationError):
        reservation_filters("pending", TODAY)
    with pytest.raises(ValidationError):
        clause(BORROW_FIELDS, Filter("password_hash", "eq", "x"))
    with pytest.raises(ValidationError):
        clause(BORROW_FIELDS, Filter("status", "like", "%"))


def test_parse_date():
    assert parse_date(" 2026-03-02 ") == date(2026, 3, 2)
    with pytest.raises(ValidationError):
        parse_date(None)


def test_borrow_stats(loans):
    assert reports.borrow_stats(TODAY) == {
        "total_borrowed": 1,
        "total_returned": 1,
        "total_overdue": 1,
        "total_lost": 1,
    }


# ----------------------------
# Reservations
# ----------------------------
@pytest.fixture
def queue(factory):
    book = factory.book()
    factory.borrow(factory.user(), book)
    waiting = factory.reservation(factory.user(), book, 1)
    stale = factory.reservation(
        factory.user(), book, 2,
        reservation_date=TODAY - timedelta(days=35), expiry_date=TODAY - timedelta(days=5),
    )
    cancelled = factory.reservation(factory.user(), book, 3, status=ReservationStatus.CANCELLED)
    return {"waiting": waiting, "stale": stale, "cancelled": cancelled}


def test_expired_filter_matches_stale_active_rows(queue):
    rows = reports.list_reservations(reservation_filters("expired", TODAY), TODAY)

    assert [row["id"] for row in rows] == [queue["stale"].id]
    assert rows[0]["status"] == ReservationStatus.ACTIVE
    assert rows[0]["display_status"] == ReservationStatus.EXPIRED
    assert rows[0]["days_until_expiry"] == -5


def test_active_filter_excludes_stale_rows(queue):
    rows = reports.list_reservations(reservation_filters("active", TODAY), TODAY)

    assert [row["id"] for row in rows] == [queue["waiting"].id]
    assert rows[0]["book_status"] == "borrowed"


def test_reservation_stats(queue):
    assert reports.reservation_stats(TODAY) == {
        "active_reservations": 1,
        "fulfilled_reservations": 0,
        "expired_reservations": 1,
        "cancelled_reservations": 1,
    }


# ----------------------------
# Dashboard
# ----------------------------
def test_dashboard_stats(factory, loans):
    student = loans["late"].user
    factory.fine(student, loans["returned"], "4.40")

    stats = reports.dashboard_stats(student.id, TODAY)

    assert stats == {
        "borrowed_books": 2,
        "overdue_books": 1,
        "active_reservations": 0,
        "unpaid_fines": "4.40",
        "unread_notifications": 0,
    }
