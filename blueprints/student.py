# blueprints/student.py

from functools import wraps

from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user

import catalog
import circulation
import fines
import notifications
from circulation import current_borrow
from errors import AuthorizationError
from models import Role, Reservation, ReservationStatus
from principal import Principal
from reports import dashboard_stats
from serializers import (
    book_to_dict,
    borrow_to_dict,
    fine_to_dict,
    notification_to_dict,
    reservation_to_dict,
)

# ----------------------------
# Blueprint
# ----------------------------
student_bp = Blueprint('student', __name__, url_prefix='/student')


# ----------------------------
# Borrower role decorator
# ----------------------------
def borrower_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if current_user.role not in Role.BORROWERS:
            raise AuthorizationError('Student or staff access only.')
        return fn(*args, **kwargs)
    return wrapper


def principal():
    return Principal.from_user(current_user)


def payload():
    return request.get_json(silent=True) or request.form


# ----------------------------
# Dashboard
# ----------------------------
@student_bp.route('/')
@login_required
@borrower_required
def dashboard():
    return jsonify({
        "success": True,
        "name": current_user.full_name,
        "stats": dashboard_stats(current_user.id),
    })


# ----------------------------
# Search catalogue
# ----------------------------
@student_bp.route('/books')
@login_required
@borrower_required
def books():
    title = request.args.get('title', '').strip()
    results = catalog.search_books(
        title=title,
        author=request.args.get('author', '').strip(),
        isbn=request.args.get('isbn', '').strip(),
        category=request.args.get('category', '').strip(),
        year=request.args.get('year', '').strip(),
    )

    suggestions = []
    if not results and title:
        suggestions = [book_to_dict(b) for b in catalog.suggest_titles(title)]

    return jsonify({
        "success": True,
        "books": [book_to_dict(b) for b in results],
        "suggestions": suggestions,
    })


@student_bp.route('/books/<int:book_id>')
@login_required
@borrower_required
def book_detail(book_id):
    book = catalog.get_book(book_id)
    queue = Reservation.query.filter_by(
        book_id=book_id, status=ReservationStatus.ACTIVE
    ).count()

    return jsonify({
        "success": True,
        "book": book_to_dict(book),
        "queue_length": queue,
        "already_borrowed": current_borrow(current_user.id, book_id) is not None,
        "already_reserved": _has_active_reservation(book_id),
    })


def _has_active_reservation(book_id):
    return Reservation.query.filter_by(
        user_id=current_user.id, book_id=book_id, status=ReservationStatus.ACTIVE
    ).first() is not None


# ----------------------------
# Checkout station scan
# ----------------------------
@student_bp.route('/scan', methods=['POST'])
@login_required
@borrower_required
def scan():
    book = catalog.find_by_code(payload().get('barcode'))
    return jsonify({
        "success": True,
        "book": book_to_dict(book),
        "already_borrowed": current_borrow(current_user.id, book.id) is not None,
        "already_reserved": _has_active_reservation(book.id),
    })


# ----------------------------
# Borrow / reserve / return
# ----------------------------
@student_bp.route('/books/<int:book_id>/borrow', methods=['POST'])
@login_required
@borrower_required
def borrow_book(book_id):
    record = circulation.borrow(principal(), current_user.id, book_id)
    return jsonify({
        "success": True,
        "message": "Book borrowed successfully!",
        "due_date": record.due_date.isoformat(),
        "book_title": record.book.title,
    })


@student_bp.route('/books/<int:book_id>/reserve', methods=['POST'])
@login_required
@borrower_required
def reserve_book(book_id):
    reservation = circulation.reserve(principal(), current_user.id, book_id)
    position = reservation.queue_position
    return jsonify({
        "success": True,
        "message": f"Book reserved successfully! You are #{position} in the queue.",
        "queue_position": position,
        "book_title": reservation.book.title,
    })


@student_bp.route('/books/<int:book_id>/return', methods=['POST'])
@login_required
@borrower_required
def return_book(book_id):
    record = circulation.return_book(principal(), current_user.id, book_id)
    return jsonify({
        "success": True,
        "message": "Book returned successfully!",
        "book_title": record.book.title,
    })


# ----------------------------
# My account
# ----------------------------
@student_bp.route('/borrowed')
@login_required
@borrower_required
def borrowed_books():
    status = request.args.get('status', '').strip() or None
    records = circulation.user_borrows(current_user.id, status)
    return jsonify({
        "success": True,
        "records": [borrow_to_dict(r) for r in records],
    })


@student_bp.route('/reservations')
@login_required
@borrower_required
def reservations():
    return jsonify({
        "success": True,
        "reservations": [
            reservation_to_dict(r) for r in circulation.user_reservations(current_user.id)
        ],
    })


@student_bp.route('/reservations/<int:reservation_id>/cancel', methods=['POST'])
@login_required
@borrower_required
def cancel_reservation(reservation_id):
    circulation.cancel_reservation(
        principal(), reservation_id, payload().get('reason')
    )
    return jsonify({"success": True, "message": "Reservation cancelled."})


@student_bp.route('/fines')
@login_required
@borrower_required
def my_fines():
    outstanding = fines.outstanding_fines(current_user.id)
    return jsonify({
        "success": True,
        "fines": [fine_to_dict(f) for f in outstanding],
        "total_due": str(fines.outstanding_total(current_user.id)),
    })


@student_bp.route('/notifications')
@login_required
@borrower_required
def my_notifications():
    items = notifications.list_notifications(current_user.id)
    response = jsonify({
        "success": True,
        "notifications": [notification_to_dict(n) for n in items],
    })
    notifications.mark_all_read(current_user.id)
    return response
