# circulation.py
# Borrow, return and reservation lifecycle

from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import func, update

from errors import (
    AlreadyBorrowedError,
    AlreadyReservedError,
    AuthorizationError,
    BookUnavailableError,
    BorrowLimitExceededError,
    ConflictError,
    NotBorrowedError,
    NotFoundError,
    ReservationNotAllowedError,
    UserInactiveError,
    ValidationError,
)
from extension import db
from models import (
    AccountStatus,
    Book,
    BookStatus,
    Borrow,
    BorrowStatus,
    Reservation,
    ReservationStatus,
    Role,
    User,
)
from notifications import notify_pickup_ready
from principal import require_role, require_self_or_librarian
from rules import policy_for
from transaction import transaction


# ----------------------------
# Lookups
# ----------------------------
def _active_user(user_id):
    user = db.session.get(User, user_id)
    if user is None or user.account_status != AccountStatus.ACTIVE:
        raise UserInactiveError("User not found or inactive.")
    return user


def _book(book_id, lock=False):
    query = Book.query.filter_by(id=book_id)
    if lock:
        query = query.with_for_update()
    book = query.first()
    if book is None:
        raise NotFoundError("Book not found.")
    return book


def current_borrow(user_id, book_id, lock=False):
    query = Borrow.query.filter_by(
        user_id=user_id, book_id=book_id, status=BorrowStatus.BORROWED
    )
    if lock:
        query = query.with_for_update()
    return query.first()


def active_borrow_count(user_id):
    return Borrow.query.filter_by(user_id=user_id, status=BorrowStatus.BORROWED).count()


def _method(principal, user_id):
    return "self_service" if principal.user_id == user_id else "librarian"


def claim_book(book_id, *expected):
    """Flip a book to ``borrowed`` only if it is still in an expected status."""
    result = db.session.execute(
        update(Book)
        .where(Book.id == book_id, Book.status.in_(expected))
        .values(status=BookStatus.BORROWED, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise BookUnavailableError("Book is no longer available for borrowing.")

    book = db.session.get(Book, book_id)
    if book is not None:
        db.session.expire(book, ["status", "updated_at"])


# ----------------------------
# Reservation status
# ----------------------------
def effective_status(reservation, today=None):
    today = today or date.today()
    if reservation.status == ReservationStatus.ACTIVE and reservation.expiry_date < today:
        return ReservationStatus.EXPIRED
    return reservation.status


def days_until_expiry(reservation, today=None):
    today = today or date.today()
    return (reservation.expiry_date - today).days


def is_pickup_pending(reservation):
    return reservation.status == ReservationStatus.FULFILLED and reservation.borrow_id is None


def next_in_queue(book_id, today=None):
    """Head of the waiting queue for a book, skipping expired entries."""
    today = today or date.today()
    return (
        Reservation.query.filter(
            Reservation.book_id == book_id,
            Reservation.status == ReservationStatus.ACTIVE,
            Reservation.expiry_date >= today,
        )
        .order_by(Reservation.queue_position.asc())
        .first()
    )


# ----------------------------
# Borrow
# ----------------------------
def borrow(principal, user_id, book_id, today=None):
    require_self_or_librarian(principal, user_id)
    today = today or date.today()

    with transaction():
        user = _active_user(user_id)
        policy = policy_for(user.role)

        if active_borrow_count(user_id) >= policy.max_books_allowed:
            raise BorrowLimitExceededError(
                f"You have reached the maximum limit of {policy.max_books_allowed} borrowed books."
            )

        book = _book(book_id)
        if book.status != BookStatus.AVAILABLE:
            raise BookUnavailableError(
                f"Book is not available for borrowing (status: {book.status})."
            )

        if current_borrow(user_id, book_id) is not None:
            raise AlreadyBorrowedError("You have already borrowed this book.")

        claim_book(book_id, BookStatus.AVAILABLE)

        record = Borrow(
            user_id=user_id,
            book_id=book_id,
            borrow_date=today,
            due_date=today + timedelta(days=policy.borrow_period_days),
            status=BorrowStatus.BORROWED,
            checkout_method=_method(principal, user_id),
        )
        db.session.add(record)

    current_app.logger.info(
        "Book %s borrowed by user %s, due %s", book_id, user_id, record.due_date
    )
    return record


# ----------------------------
# Return
# ----------------------------
def return_book(principal, user_id, book_id, today=None, now=None):
    require_self_or_librarian(principal, user_id)
    today = today or date.today()
    now = now or datetime.utcnow()
    hours = current_app.config["PICKUP_WINDOW_HOURS"]

    with transaction():
        record = current_borrow(user_id, book_id, lock=True)
        if record is None:
            raise NotBorrowedError("You have not borrowed this book.")

        record.return_date = today
        record.status = BorrowStatus.RETURNED
        record.return_method = _method(principal, user_id)

        book = record.book
        head = next_in_queue(book_id, today)
        if head is not None:
            book.status = BookStatus.RESERVED
            head.status = ReservationStatus.FULFILLED
            head.self_pickup_deadline = now + timedelta(hours=hours)
            head.pickup_notification_date = now
        else:
            book.status = BookStatus.AVAILABLE

    current_app.logger.info("Book %s returned by user %s", book_id, user_id)

    if head is not None:
        current_app.logger.info(
            "Book %s held for reservation %s (user %s)", book_id, head.id, head.user_id
        )
        notify_pickup_ready(head, now=now)

    return record


# ----------------------------
# Reservations
# ----------------------------
def reserve(principal, user_id, book_id, today=None):
    require_self_or_librarian(principal, user_id)
    today = today or date.today()

    with transaction():
        _active_user(user_id)

        # lock the book row so queue positions are handed out one at a time
        book = _book(book_id, lock=True)
        if book.status != BookStatus.BORROWED:
            raise ReservationNotAllowedError(
                "You can only reserve books that are currently borrowed."
            )

        existing = Reservation.query.filter_by(
            user_id=user_id, book_id=book_id, status=ReservationStatus.ACTIVE
        ).first()
        if existing is not None:
            raise AlreadyReservedError("You have already reserved this book.")

        max_position = (
            db.session.query(func.coalesce(func.max(Reservation.queue_position), 0))
            .filter(
                Reservation.book_id == book_id,
                Reservation.status == ReservationStatus.ACTIVE,
            )
            .scalar()
        )

        reservation = Reservation(
            user_id=user_id,
            book_id=book_id,
            reservation_date=today,
            expiry_date=today + timedelta(days=current_app.config["RESERVATION_EXPIRY_DAYS"]),
            queue_position=max_position + 1,
            status=ReservationStatus.ACTIVE,
        )
        db.session.add(reservation)

    current_app.logger.info(
        "Book %s reserved by user %s at position %s",
        book_id, user_id, reservation.queue_position,
    )
    return reservation


def fulfill_reservation(principal, reservation_id, book_id, borrow_period_days=None, today=None):
    """Convert a waiting or ready reservation into a loan for its holder."""
    require_role(principal, Role.LIBRARIAN)
    today = today or date.today()

    with transaction():
        reservation = db.session.get(Reservation, reservation_id)
        if reservation is None:
            raise NotFoundError("Reservation not found.")
        if reservation.book_id != book_id:
            raise ValidationError("The book does not match this reservation.")

        if reservation.status == ReservationStatus.ACTIVE:
            if effective_status(reservation, today) == ReservationStatus.EXPIRED:
                raise ConflictError("This reservation has expired.")
            expected = BookStatus.AVAILABLE
        elif is_pickup_pending(reservation):
            expected = BookStatus.RESERVED
        else:
            raise ConflictError(
                f"This reservation can no longer be fulfilled (status: {reservation.status})."
            )

        holder = _active_user(reservation.user_id)
        if borrow_period_days is None:
            borrow_period_days = policy_for(holder.role).borrow_period_days
        if int(borrow_period_days) <= 0:
            raise ValidationError("Borrow period must be at least one day.")

        claim_book(book_id, expected)

        record = Borrow(
            user_id=holder.id,
            book_id=book_id,
            borrow_date=today,
            due_date=today + timedelta(days=int(borrow_period_days)),
            status=BorrowStatus.BORROWED,
            checkout_method="reservation",
        )
        db.session.add(record)
        db.session.flush()

        reservation.status = ReservationStatus.FULFILLED
        reservation.borrow_id = record.id

    current_app.logger.info(
        "Reservation %s fulfilled by librarian %s, loan %s",
        reservation_id, principal.user_id, record.id,
    )
    return record


def cancel_reservation(principal, reservation_id, reason, today=None):
    require_role(principal, *Role.ALL)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Please provide a reason for cancelling the reservation.")

    with transaction():
        reservation = db.session.get(Reservation, reservation_id)
        if reservation is None:
            raise NotFoundError("Reservation not found.")
        if not principal.is_librarian and reservation.user_id != principal.user_id:
            raise AuthorizationError("You can only cancel your own reservations.")

        # reservations that only display as expired are still stored as active
        if reservation.status != ReservationStatus.ACTIVE:
            raise ConflictError(
                f"Only active reservations can be cancelled (status: {reservation.status})."
            )

        reservation.status = ReservationStatus.CANCELLED
        reservation.cancellation_reason = reason

    current_app.logger.info(
        "Reservation %s cancelled by user %s: %s", reservation_id, principal.user_id, reason
    )
    return reservation


def user_reservations(user_id):
    return (
        Reservation.query.filter_by(user_id=user_id)
        .order_by(Reservation.reservation_date.desc(), Reservation.id.desc())
        .all()
    )


def user_borrows(user_id, status=None):
    query = Borrow.query.filter_by(user_id=user_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(Borrow.borrow_date.desc(), Borrow.id.desc()).all()
