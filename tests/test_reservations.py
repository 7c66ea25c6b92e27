from datetime import timedelta

import pytest

import circulation
from conftest import TODAY, as_principal
from errors import (
    AlreadyReservedError,
    AuthorizationError,
    BookUnavailableError,
    ConflictError,
    NotFoundError,
    ReservationNotAllowedError,
    ValidationError,
)
from extension import db
from models import Book, BookStatus, BorrowStatus, ReservationStatus, Role


@pytest.fixture
def borrowed_book(factory):
    book = factory.book(title="Hikayat Hang Tuah")
    factory.borrow(factory.user(), book)
    return book


# ----------------------------
# Reserve
# ----------------------------
def test_queue_positions_increase(factory, borrowed_book):
    users = [factory.user() for _ in range(3)]

    positions = [
        circulation.reserve(as_principal(u), u.id, borrowed_book.id, today=TODAY).queue_position
        for u in users
    ]

    assert positions == [1, 2, 3]


def test_reservation_expires_after_configured_days(factory, borrowed_book):
    student = factory.user()

    reservation = circulation.reserve(as_principal(student), student.id, borrowed_book.id, today=TODAY)

    assert reservation.reservation_date == TODAY
    assert reservation.expiry_date == TODAY + timedelta(days=30)
    assert reservation.status == ReservationStatus.ACTIVE
    assert circulation.days_until_expiry(reservation, TODAY) == 30


def test_available_book_cannot_be_reserved(factory):
    student = factory.user()
    book = factory.book()

    with pytest.raises(ReservationNotAllowedError):
        circulation.reserve(as_principal(student), student.id, book.id, today=TODAY)


def test_same_book_reserved_twice(factory, borrowed_book):
    student = factory.user()
    circulation.reserve(as_principal(student), student.id, borrowed_book.id, today=TODAY)

    with pytest.raises(AlreadyReservedError):
        circulation.reserve(as_principal(student), student.id, borrowed_book.id, today=TODAY)


def test_reserving_again_after_cancel_joins_back_of_queue(factory, borrowed_book):
    first = factory.user()
    second = factory.user()
    mine = circulation.reserve(as_principal(first), first.id, borrowed_book.id, today=TODAY)
    circulation.reserve(as_principal(second), second.id, borrowed_book.id, today=TODAY)

    circulation.cancel_reservation(as_principal(first), mine.id, "Changed my mind", today=TODAY)
    again = circulation.reserve(as_principal(first), first.id, borrowed_book.id, today=TODAY)

    assert again.queue_position == 3


def test_reserve_unknown_book(factory):
    student = factory.user()

    with pytest.raises(NotFoundError):
        circulation.reserve(as_principal(student), student.id, 4242, today=TODAY)


# ----------------------------
# Display status
# ----------------------------
def test_past_expiry_displays_as_expired(factory, borrowed_book):
    reservation = factory.reservation(
        factory.user(), borrowed_book, 1,
        reservation_date=TODAY - timedelta(days=31),
        expiry_date=TODAY - timedelta(days=1),
    )

    assert reservation.status == ReservationStatus.ACTIVE
    assert circulation.effective_status(reservation, TODAY) == ReservationStatus.EXPIRED
    assert circulation.effective_status(reservation, TODAY - timedelta(days=1)) == ReservationStatus.ACTIVE


def test_next_in_queue_orders_by_position(factory, borrowed_book):
    factory.reservation(factory.user(), borrowed_book, 2)
    head = factory.reservation(factory.user(), borrowed_book, 1)

    assert circulation.next_in_queue(borrowed_book.id, TODAY).id == head.id


# ----------------------------
# Cancel
# ----------------------------
def test_cancel_requires_reason(factory, borrowed_book):
    student = factory.user()
    reservation = factory.reservation(student, borrowed_book, 1)

    with pytest.raises(ValidationError):
        circulation.cancel_reservation(as_principal(student), reservation.id, "   ", today=TODAY)

    assert reservation.status == ReservationStatus.ACTIVE


def test_cancel_records_reason(factory, borrowed_book):
    student = factory.user()
    reservation = factory.reservation(student, borrowed_book, 1)

    circulation.cancel_reservation(as_principal(student), reservation.id, " No longer needed ", today=TODAY)

    assert reservation.status == ReservationStatus.CANCELLED
    assert reservation.cancellation_reason == "No longer needed"


def test_cancelled_reservation_is_terminal(factory, borrowed_book):
    student = factory.user()
    reservation = factory.reservation(student, borrowed_book, 1, status=ReservationStatus.CANCELLED)

    with pytest.raises(ConflictError):
        circulation.cancel_reservation(as_principal(student), reservation.id, "again", today=TODAY)


def test_reservation_showing_expired_can_still_be_cancelled(factory, borrowed_book):
    student = factory.user()
    reservation = factory.reservation(
        student, borrowed_book, 1,
        reservation_date=TODAY - timedelta(days=40),
        expiry_date=TODAY - timedelta(days=10),
    )

    circulation.cancel_reservation(as_principal(student), reservation.id, "Too late", today=TODAY)

    assert reservation.status == ReservationStatus.CANCELLED


def test_student_cannot_cancel_someone_elses_reservation(factory, borrowed_book):
    owner = factory.user()
    other = factory.user()
    reservation = factory.reservation(owner, borrowed_book, 1)

    with pytest.raises(AuthorizationError):
        circulation.cancel_reservation(as_principal(other), reservation.id, "mine now", today=TODAY)


def test_librarian_can_cancel_any_reservation(factory, borrowed_book):
    reservation = factory.reservation(factory.user(), borrowed_book, 1)
    librarian = factory.librarian()

    circulation.cancel_reservation(as_principal(librarian), reservation.id, "Book withdrawn", today=TODAY)

    assert reservation.status == ReservationStatus.CANCELLED


# ----------------------------
# Fulfil
# ----------------------------
def test_fulfill_pickup_pending_reservation(factory, borrowed_book):
    librarian = factory.librarian()
    holder = factory.user()
    reservation = factory.reservation(holder, borrowed_book, 1)
    borrower = borrowed_book.borrows[0].user
    circulation.return_book(as_principal(borrower), borrower.id, borrowed_book.id, today=TODAY)

    record = circulation.fulfill_reservation(
        as_principal(librarian), reservation.id, borrowed_book.id, today=TODAY
    )

    assert record.user_id == holder.id
    assert record.status == BorrowStatus.BORROWED
    assert record.checkout_method == "reservation"
    assert record.due_date == TODAY + timedelta(days=14)
    assert reservation.status == ReservationStatus.FULFILLED
    assert reservation.borrow_id == record.id
    assert db.session.get(Book, borrowed_book.id).status == BookStatus.BORROWED


def test_fulfill_active_reservation_on_shelved_book(factory):
    librarian = factory.librarian()
    holder = factory.user()
    book = factory.book()
    reservation = factory.reservation(holder, book, 1)

    record = circulation.fulfill_reservation(
        as_principal(librarian), reservation.id, book.id, borrow_period_days=7, today=TODAY
    )

    assert record.due_date == TODAY + timedelta(days=7)
    assert reservation.borrow_id == record.id


def test_fulfill_active_reservation_while_book_still_out(factory, borrowed_book):
    librarian = factory.librarian()
    reservation = factory.reservation(factory.user(), borrowed_book, 1)

    with pytest.raises(BookUnavailableError):
        circulation.fulfill_reservation(
            as_principal(librarian), reservation.id, borrowed_book.id, today=TODAY
        )

    assert reservation.status == ReservationStatus.ACTIVE


def test_fulfill_twice_is_rejected(factory):
    librarian = factory.librarian()
    book = factory.book()
    reservation = factory.reservation(factory.user(), book, 1)
    circulation.fulfill_reservation(as_principal(librarian), reservation.id, book.id, today=TODAY)

    with pytest.raises(ConflictError):
        circulation.fulfill_reservation(as_principal(librarian), reservation.id, book.id, today=TODAY)


def test_fulfill_expired_reservation(factory):
    librarian = factory.librarian()
    book = factory.book()
    reservation = factory.reservation(
        factory.user(), book, 1,
        reservation_date=TODAY - timedelta(days=40),
        expiry_date=TODAY - timedelta(days=10),
    )

    with pytest.raises(ConflictError):
        circulation.fulfill_reservation(as_principal(librarian), reservation.id, book.id, today=TODAY)


def test_fulfill_with_wrong_book(factory):
    librarian = factory.librarian()
    book = factory.book()
    reservation = factory.reservation(factory.user(), book, 1)

    with pytest.raises(ValidationError):
        circulation.fulfill_reservation(
            as_principal(librarian), reservation.id, factory.book().id, today=TODAY
        )


def test_only_librarians_fulfill(factory):
    student = factory.user()
    book = factory.book()
    reservation = factory.reservation(student, book, 1)

    with pytest.raises(AuthorizationError):
        circulation.fulfill_reservation(as_principal(student), reservation.id, book.id, today=TODAY)


def test_staff_reservation_uses_staff_period(factory):
    factory.rule(Role.STAFF, period=30)
    librarian = factory.librarian()
    staff = factory.user(role=Role.STAFF)
    book = factory.book()
    reservation = factory.reservation(staff, book, 1)

    record = circulation.fulfill_reservation(as_principal(librarian), reservation.id, book.id, today=TODAY)

    assert record.due_date == TODAY + timedelta(days=30)
