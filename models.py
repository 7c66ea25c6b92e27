# models.py
# type: ignore
# pyright: ignore

from decimal import Decimal
from datetime import datetime, date

from extension import db
from flask_login import UserMixin


# ------------------------
# Enumerations
# ------------------------
class Role:
    STUDENT = 'student'
    STAFF = 'staff'
    LIBRARIAN = 'librarian'

    BORROWERS = (STUDENT, STAFF)
    ALL = (STUDENT, STAFF, LIBRARIAN)


class AccountStatus:
    ACTIVE = 'active'
    INACTIVE = 'inactive'


class BookStatus:
    AVAILABLE = 'available'
    BORROWED = 'borrowed'
    RESERVED = 'reserved'
    MAINTENANCE = 'maintenance'
    DISPOSED = 'disposed'


class BorrowStatus:
    BORROWED = 'borrowed'
    RETURNED = 'returned'
    LOST = 'lost'


class ReservationStatus:
    ACTIVE = 'active'
    FULFILLED = 'fulfilled'
    EXPIRED = 'expired'
    CANCELLED = 'cancelled'


class PaymentStatus:
    UNPAID = 'unpaid'
    PAID = 'paid'


class LetterType:
    WARNING = 'warning'
    FINAL_NOTICE = 'final_notice'
    REPLACEMENT_DEMAND = 'replacement_demand'

    ALL = (WARNING, FINAL_NOTICE, REPLACEMENT_DEMAND)


MONEY = db.Numeric(10, 2)
ZERO = Decimal('0.00')


# ------------------------
# Users
# ------------------------
class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    login_id = db.Column(db.String(50), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=Role.STUDENT)
    account_status = db.Column(db.String(20), nullable=False, default=AccountStatus.ACTIVE)

    first_name = db.Column(db.String(80), nullable=False, default='')
    last_name = db.Column(db.String(80), nullable=False, default='')
    must_change_password = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    borrows = db.relationship('Borrow', backref='user', lazy=True)
    reservations = db.relationship('Reservation', backref='user', lazy=True)
    student_profile = db.relationship('StudentProfile', backref='user', uselist=False)
    staff_profile = db.relationship('StaffProfile', backref='user', uselist=False)

    # Flask-Login refuses sessions for inactive accounts
    @property
    def is_active(self):
        return self.account_status == AccountStatus.ACTIVE

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip() or self.login_id

    @property
    def id_number(self):
        if self.student_profile and self.student_profile.student_id_number:
            return self.student_profile.student_id_number
        if self.staff_profile and self.staff_profile.staff_id_number:
            return self.staff_profile.staff_id_number
        return self.login_id

    @property
    def class_dept(self):
        if self.student_profile:
            return self.student_profile.student_class
        if self.staff_profile:
            return self.staff_profile.department
        return None

    # Role helpers
    def is_librarian(self):
        return self.role == Role.LIBRARIAN

    def is_student(self):
        return self.role == Role.STUDENT


class StudentProfile(db.Model):
    __tablename__ = 'students'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False)
    student_id_number = db.Column(db.String(30), unique=True)
    student_class = db.Column(db.String(30))


class StaffProfile(db.Model):
    __tablename__ = 'staff'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False)
    staff_id_number = db.Column(db.String(30), unique=True)
    department = db.Column(db.String(80))


# ------------------------
# Books
# ------------------------
class Book(db.Model):
    __tablename__ = 'books'

    id = db.Column(db.Integer, primary_key=True)

    isbn = db.Column(db.String(20), index=True)
    barcode = db.Column(db.String(40), unique=True)
    title = db.Column(db.String(255), nullable=False)
    author = db.Column(db.String(120), nullable=False)
    publisher = db.Column(db.String(120))
    publication_year = db.Column(db.Integer)
    language = db.Column(db.String(40))
    category = db.Column(db.String(80))
    shelf_location = db.Column(db.String(40))
    description = db.Column(db.Text)

    status = db.Column(db.String(20), nullable=False, default=BookStatus.AVAILABLE)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    borrows = db.relationship('Borrow', backref='book', lazy=True)
    reservations = db.relationship('Reservation', backref='book', lazy=True)


# ------------------------
# Borrowing rules
# ------------------------
class BorrowingRule(db.Model):
    __tablename__ = 'borrowing_rules'

    id = db.Column(db.Integer, primary_key=True)
    user_type = db.Column(db.String(20), unique=True, nullable=False)
    max_books_allowed = db.Column(db.Integer, nullable=False)
    borrow_period_days = db.Column(db.Integer, nullable=False)
    overdue_fine_per_day = db.Column(MONEY, nullable=False)


# ------------------------
# Borrow Records
# ------------------------
class Borrow(db.Model):
    __tablename__ = 'borrow_records'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    book_id = db.Column(db.Integer, db.ForeignKey('books.id'), nullable=False, index=True)

    borrow_date = db.Column(db.Date, default=date.today, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    return_date = db.Column(db.Date)

    status = db.Column(db.String(20), nullable=False, default=BorrowStatus.BORROWED)
    renewal_count = db.Column(db.Integer, nullable=False, default=0)
    checkout_method = db.Column(db.String(20), default='self_service')
    return_method = db.Column(db.String(20))
    notes = db.Column(db.Text)

    fines = db.relationship('Fine', backref='borrow', lazy=True)


# ------------------------
# Reservations
# ------------------------
class Reservation(db.Model):
    __tablename__ = 'reservations'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    book_id = db.Column(db.Integer, db.ForeignKey('books.id'), nullable=False, index=True)

    reservation_date = db.Column(db.Date, default=date.today, nullable=False)
    expiry_date = db.Column(db.Date, nullable=False)
    queue_position = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=ReservationStatus.ACTIVE)

    notification_sent = db.Column(db.Boolean, nullable=False, default=False)
    self_pickup_deadline = db.Column(db.DateTime)
    pickup_notification_date = db.Column(db.DateTime)
    cancellation_reason = db.Column(db.Text)

    # set once the reservation has been converted into a loan
    borrow_id = db.Column(db.Integer, db.ForeignKey('borrow_records.id'))
    borrow = db.relationship('Borrow', foreign_keys=[borrow_id])


# ------------------------
# Fines
# ------------------------
class Fine(db.Model):
    __tablename__ = 'fines'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    borrow_id = db.Column(db.Integer, db.ForeignKey('borrow_records.id'), nullable=False)

    fine_amount = db.Column(MONEY, nullable=False)
    amount_paid = db.Column(MONEY, nullable=False, default=ZERO)
    balance_due = db.Column(MONEY, nullable=False)
    payment_status = db.Column(db.String(20), nullable=False, default=PaymentStatus.UNPAID)

    fine_reason = db.Column(db.String(255), nullable=False)
    fine_date = db.Column(db.Date, default=date.today, nullable=False)
    payment_date = db.Column(db.DateTime)
    collected_by = db.Column(db.Integer, db.ForeignKey('users.id'))

    user = db.relationship('User', foreign_keys=[user_id], backref='fines')


# ------------------------
# Receipts / Letters
# ------------------------
class Receipt(db.Model):
    __tablename__ = 'receipts'

    id = db.Column(db.Integer, primary_key=True)
    receipt_number = db.Column(db.String(50), unique=True, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    librarian_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)

    total_amount_paid = db.Column(MONEY, nullable=False)
    cash_received = db.Column(MONEY, nullable=False)
    change_given = db.Column(MONEY, nullable=False)
    payment_method = db.Column(db.String(20), nullable=False, default='cash')
    transaction_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    fine_ids = db.Column(db.Text, nullable=False)


class FineLetter(db.Model):
    __tablename__ = 'fine_letters'

    id = db.Column(db.Integer, primary_key=True)
    letter_number = db.Column(db.String(50), unique=True, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    librarian_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)

    letter_type = db.Column(db.String(30), nullable=False)
    total_fine_amount = db.Column(MONEY, nullable=False)
    fine_ids = db.Column(db.Text, nullable=False)
    letter_content = db.Column(db.Text, nullable=False)
    issue_date = db.Column(db.Date, nullable=False, default=date.today)


# ------------------------
# Notifications
# ------------------------
class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    notification_type = db.Column(db.String(40), nullable=False)
    title = db.Column(db.String(150), nullable=False)
    message = db.Column(db.Text, nullable=False)
    related_reservation_id = db.Column(db.Integer, db.ForeignKey('reservations.id'))

    sent_date = db.Column(db.DateTime, default=datetime.utcnow)
    read_status = db.Column(db.Boolean, nullable=False, default=False)
