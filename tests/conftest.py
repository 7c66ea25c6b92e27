from datetime import date, timedelta
from decimal import Decimal

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from extension import db
from models import (
    AccountStatus,
    Book,
    BookStatus,
    Borrow,
    BorrowingRule,
    BorrowStatus,
    Fine,
    PaymentStatus,
    Reservation,
    ReservationStatus,
    Role,
    User,
)
from principal import Principal

TODAY = date(2026, 3, 2)
PASSWORD = "secret1"


def make_app(database_uri="sqlite://", **extra):
    overrides = {
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": database_uri,
        "DEFAULT_MAX_BOOKS": 3,
        "DEFAULT_BORROW_PERIOD_DAYS": 14,
        "DEFAULT_OVERDUE_FINE_PER_DAY": "0.50",
        "RESERVATION_EXPIRY_DAYS": 30,
        "PICKUP_WINDOW_HOURS": 48,
        "CURRENCY": "RM",
    }
    overrides.update(extra)
    return create_app(overrides)


class Factory:
    """Builds committed rows for tests; must be used inside an app context."""

    def __init__(self):
        self._seq = 0

    def _next(self):
        self._seq += 1
        return self._seq

    def user(self, role=Role.STUDENT, status=AccountStatus.ACTIVE, login_id=None, **kwargs):
        n = self._next()
        login_id = login_id or f"{role[:3]}{1000 + n}"
        user = User(
            login_id=login_id,
            email=f"{login_id}@school.test",
            password_hash=generate_password_hash(PASSWORD, method="pbkdf2:sha256:1000"),
            role=role,
            account_status=status,
            first_name=kwargs.pop("first_name", "Nur"),
            last_name=kwargs.pop("last_name", f"Aisyah {n}"),
            **kwargs,
        )
        db.session.add(user)
        db.session.commit()
        return user

    def librarian(self, **kwargs):
        return self.user(role=Role.LIBRARIAN, **kwargs)

    def book(self, title=None, status=BookStatus.AVAILABLE, **kwargs):
        n = self._next()
        book = Book(
            title=title or f"Book {n}",
            author=kwargs.pop("author", "Hamka"),
            barcode=kwargs.pop("barcode", f"BC{n:05d}"),
            isbn=kwargs.pop("isbn", f"97800000{n:05d}"),
            category=kwargs.pop("category", "Fiction"),
            status=status,
            **kwargs,
        )
        db.session.add(book)
        db.session.commit()
        return book

    def rule(self, user_type=Role.STUDENT, max_books=3, period=14, fine_per_day="0.50"):
        rule = BorrowingRule(
            user_type=user_type,
            max_books_allowed=max_books,
            borrow_period_days=period,
            overdue_fine_per_day=Decimal(fine_per_day),
        )
        db.session.add(rule)
        db.session.commit()
        return rule

    def borrow(self, user, book, borrow_date=None, due_date=None,
               status=BorrowStatus.BORROWED, return_date=None, mark_book=True):
        borrow_date = borrow_date or TODAY - timedelta(days=7)
        record = Borrow(
            user_id=user.id,
            book_id=book.id,
            borrow_date=borrow_date,
            due_date=due_date or borrow_date + timedelta(days=14),
            return_date=return_date,
            status=status,
        )
        if mark_book and status == BorrowStatus.BORROWED:
            book.status = BookStatus.BORROWED
        db.session.add(record)
        db.session.commit()
        return record

    def reservation(self, user, book, position, reservation_date=None,
                    expiry_date=None, status=ReservationStatus.ACTIVE):
        reservation_date = reservation_date or TODAY - timedelta(days=1)
        reservation = Reservation(
            user_id=user.id,
            book_id=book.id,
            reservation_date=reservation_date,
            expiry_date=expiry_date or reservation_date + timedelta(days=30),
            queue_position=position,
            status=status,
        )
        db.session.add(reservation)
        db.session.commit()
        return reservation

    def fine(self, user, record, amount, paid="0.00", reason="Overdue 5 day(s)"):
        amount = Decimal(amount)
        paid = Decimal(paid)
        balance = amount - paid
        fine = Fine(
            user_id=user.id,
            borrow_id=record.id,
            fine_amount=amount,
            amount_paid=paid,
            balance_due=balance,
            payment_status=PaymentStatus.PAID if balance <= 0 else PaymentStatus.UNPAID,
            fine_reason=reason,
            fine_date=TODAY - timedelta(days=3),
        )
        db.session.add(fine)
        db.session.commit()
        return fine


def as_principal(user):
    return Principal(user_id=user.id, role=user.role)


@pytest.fixture
def app():
    app = make_app()
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def factory(app):
    return Factory()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    def _login(user, password=PASSWORD):
        response = client.post("/login", json={"login_id": user.login_id, "password": password})
        assert response.status_code == 200, response.get_json()
        return response
    return _login
