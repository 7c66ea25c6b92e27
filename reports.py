from datetime import date

from sqlalchemy import and_, case, func, or_

from extension import db
from filters import BORROW_FIELDS, RESERVATION_FIELDS, apply_filters
from fines import outstanding_total, overdue_days, overdue_fine
from models import (
    ZERO,
    Borrow,
    BorrowStatus,
    Reservation,
    ReservationStatus,
)
from notifications import unread_count
from serializers import borrow_to_dict, fine_to_dict, money, reservation_to_dict, user_to_dict


# ----------------------------
# Circulation control
# ----------------------------
def list_borrows(filters, today=None):
    today = today or date.today()
    query = apply_filters(Borrow.query, BORROW_FIELDS, filters)
    records = query.order_by(Borrow.borrow_date.desc(), Borrow.id.desc()).all()

    rows = []
    for record in records:
        row = borrow_to_dict(record)
        row["user"] = user_to_dict(record.user)
        row["is_overdue"] = record.status == BorrowStatus.BORROWED and record.due_date < today
        if record.status == BorrowStatus.BORROWED:
            row["days_overdue"] = overdue_days(record, today)
            row["calculated_fine"] = money(overdue_fine(record, today))
        else:
            row["days_overdue"] = 0
            row["calculated_fine"] = money(ZERO)
        row["fines"] = [fine_to_dict(fine) for fine in record.fines]
        rows.append(row)
    return rows


def borrow_stats(today=None):
    today = today or date.today()
    borrowed = Borrow.status == BorrowStatus.BORROWED
    row = db.session.query(
        func.count(case((and_(borrowed, Borrow.due_date >= today), 1))),
        func.count(case((Borrow.status == BorrowStatus.RETURNED, 1))),
        func.count(case((and_(borrowed, Borrow.due_date < today), 1))),
        func.count(case((Borrow.status == BorrowStatus.LOST, 1))),
    ).one()

    return {
        "total_borrowed": row[0],
        "total_returned": row[1],
        "total_overdue": row[2],
        "total_lost": row[3],
    }


# ----------------------------
# Reservations
# ----------------------------
def list_reservations(filters, today=None):
    today = today or date.today()
    query = apply_filters(Reservation.query, RESERVATION_FIELDS, filters)
    reservations = query.order_by(
        Reservation.reservation_date.desc(), Reservation.id.desc()
    ).all()

    rows = []
    for reservation in reservations:
        row = reservation_to_dict(reservation, today)
        row["user"] = user_to_dict(reservation.user)
        row["book_status"] = reservation.book.status
        rows.append(row)
    return rows


def reservation_stats(today=None):
    today = today or date.today()
    active = Reservation.status == ReservationStatus.ACTIVE
    row = db.session.query(
        func.count(case((and_(active, Reservation.expiry_date >= today), 1))),
        func.count(case((Reservation.status == ReservationStatus.FULFILLED, 1))),
        func.count(case((or_(
            Reservation.status == ReservationStatus.EXPIRED,
            and_(active, Reservation.expiry_date < today),
        ), 1))),
        func.count(case((Reservation.status == ReservationStatus.CANCELLED, 1))),
    ).one()

    return {
        "active_reservations": row[0],
        "fulfilled_reservations": row[1],
        "expired_reservations": row[2],
        "cancelled_reservations": row[3],
    }


# ----------------------------
# Student dashboard
# ----------------------------
def dashboard_stats(user_id, today=None):
    today = today or date.today()

    borrowed = Borrow.query.filter_by(user_id=user_id, status=BorrowStatus.BORROWED)
    active_reservations = Reservation.query.filter(
        Reservation.user_id == user_id,
        Reservation.status == ReservationStatus.ACTIVE,
        Reservation.expiry_date >= today,
    )

    return {
        "borrowed_books": borrowed.count(),
        "overdue_books": borrowed.filter(Borrow.due_date < today).count(),
        "active_reservations": active_reservations.count(),
        "unpaid_fines": money(outstanding_total(user_id)),
        "unread_notifications": unread_count(user_id),
    }
