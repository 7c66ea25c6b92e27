# type: ignore
# pyright: ignore

from datetime import date
from functools import wraps

from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user

import circulation
import fines
from errors import AuthorizationError, NotFoundError, ValidationError
from extension import db
from filters import borrow_filters, reservation_filters
from models import Role, User, Reservation
from principal import Principal
from reports import borrow_stats, list_borrows, list_reservations, reservation_stats
from serializers import (
    fine_to_dict,
    letter_to_dict,
    money,
    receipt_to_dict,
    reservation_to_dict,
    user_to_dict,
)


# =================================================
# BLUEPRINT
# =================================================
librarian_bp = Blueprint("librarian", __name__, url_prefix="/librarian")


# =================================================
# LIBRARIAN ACCESS DECORATOR
# =================================================
def librarian_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if current_user.role != Role.LIBRARIAN:
            raise AuthorizationError("Librarian access required.")
        return fn(*args, **kwargs)
    return wrapper


def principal():
    return Principal.from_user(current_user)


def payload():
    return request.get_json(silent=True) or request.form


def int_field(data, name):
    try:
        return int(data.get(name))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid or missing {name}.")


# =================================================
# CIRCULATION CONTROL
# =================================================
@librarian_bp.route("/circulation")
@login_required
@librarian_required
def circulation_control():
    today = date.today()
    filters = borrow_filters(
        status=request.args.get("status", "all"),
        date_from=request.args.get("date_from", ""),
        date_to=request.args.get("date_to", ""),
        today=today,
    )
    return jsonify({
        "success": True,
        "records": list_borrows(filters, today),
        "stats": borrow_stats(today),
    })


@librarian_bp.route("/circulation/return", methods=["POST"])
@login_required
@librarian_required
def return_on_behalf():
    data = payload()
    record = circulation.return_book(
        principal(), int_field(data, "user_id"), int_field(data, "book_id")
    )
    return jsonify({
        "success": True,
        "message": "Book marked as returned.",
        "book_title": record.book.title,
    })


# =================================================
# RESERVATIONS
# =================================================
@librarian_bp.route("/reservations")
@login_required
@librarian_required
def reservations():
    today = date.today()
    filters = reservation_filters(request.args.get("status", "all"), today)
    return jsonify({
        "success": True,
        "reservations": list_reservations(filters, today),
        "stats": reservation_stats(today),
    })


@librarian_bp.route("/reservations/<int:reservation_id>")
@login_required
@librarian_required
def reservation_details(reservation_id):
    reservation = db.session.get(Reservation, reservation_id)
    if reservation is None:
        raise NotFoundError("Reservation record not found.")

    details = reservation_to_dict(reservation)
    details["user"] = user_to_dict(reservation.user)
    details["book_status"] = reservation.book.status
    return jsonify({"success": True, "reservation": details})


@librarian_bp.route("/reservations/<int:reservation_id>/fulfill", methods=["POST"])
@login_required
@librarian_required
def fulfill_reservation(reservation_id):
    data = payload()
    period = data.get("borrow_period_days")
    record = circulation.fulfill_reservation(
        principal(),
        reservation_id,
        int_field(data, "book_id"),
        int_field(data, "borrow_period_days") if period not in (None, "") else None,
    )
    return jsonify({
        "success": True,
        "message": "Reservation fulfilled.",
        "borrow_id": record.id,
        "due_date": record.due_date.isoformat(),
    })


@librarian_bp.route("/reservations/<int:reservation_id>/cancel", methods=["POST"])
@login_required
@librarian_required
def cancel_reservation(reservation_id):
    circulation.cancel_reservation(principal(), reservation_id, payload().get("reason"))
    return jsonify({"success": True, "message": "Reservation cancelled."})


# =================================================
# FINES
# =================================================
@librarian_bp.route("/fines")
@login_required
@librarian_required
def fine_overview():
    overview = [
        {
            "user": user_to_dict(row["user"]),
            "total_fines": row["total_fines"],
            "total_amount": money(row["total_amount"]),
            "latest_fine_date": row["latest_fine_date"].isoformat() if row["latest_fine_date"] else None,
        }
        for row in fines.fine_overview()
    ]
    stats = fines.fine_stats()
    stats["total_outstanding_amount"] = money(stats["total_outstanding_amount"])
    return jsonify({"success": True, "users": overview, "stats": stats})


@librarian_bp.route("/fines/user/<login_id>")
@login_required
@librarian_required
def user_fines(login_id):
    user = User.query.filter_by(login_id=login_id.strip()).first()
    if user is None:
        raise NotFoundError("User not found.")

    return jsonify({
        "success": True,
        "user": user_to_dict(user),
        "fines": [fine_to_dict(f) for f in fines.outstanding_fines(user.id)],
    })


@librarian_bp.route("/borrows/<int:borrow_id>/fine")
@login_required
@librarian_required
def overdue_fine(borrow_id):
    return jsonify({
        "success": True,
        "borrow_id": borrow_id,
        "fine": money(fines.compute_overdue_fine(borrow_id)),
    })


@librarian_bp.route("/borrows/<int:borrow_id>/assess", methods=["POST"])
@login_required
@librarian_required
def assess_fine(borrow_id):
    fine = fines.assess_fine(principal(), borrow_id)
    return jsonify({"success": True, "fine": fine_to_dict(fine)})


@librarian_bp.route("/borrows/<int:borrow_id>/lost", methods=["POST"])
@login_required
@librarian_required
def report_lost(borrow_id):
    fine = fines.report_lost(principal(), borrow_id, payload().get("replacement_cost"))
    return jsonify({"success": True, "fine": fine_to_dict(fine)})


@librarian_bp.route("/fines/payment", methods=["POST"])
@login_required
@librarian_required
def process_payment():
    data = request.get_json(silent=True) or {}
    receipt = fines.process_payment(
        principal(),
        int_field(data, "user_id"),
        data.get("fine_ids") or [],
        data.get("amounts") or {},
        data.get("cash_received"),
    )
    return jsonify({
        "success": True,
        "message": "Payment processed.",
        "receipt": receipt_to_dict(receipt),
    })


@librarian_bp.route("/fines/letter", methods=["POST"])
@login_required
@librarian_required
def generate_letter():
    data = request.get_json(silent=True) or {}
    letter = fines.generate_letter(
        principal(),
        int_field(data, "user_id"),
        data.get("fine_ids") or [],
        data.get("letter_type"),
    )
    return jsonify({"success": True, "letter": letter_to_dict(letter)})
