"""Plain-dict views of models for JSON responses."""

from catalog import status_display
from circulation import days_until_expiry, effective_status
from money import to_money


def _iso(value):
    return value.isoformat() if value is not None else None


def money(value):
    return str(to_money(value)) if value is not None else None


def user_to_dict(user):
    return {
        "id": user.id,
        "login_id": user.login_id,
        "name": user.full_name,
        "email": user.email,
        "role": user.role,
        "account_status": user.account_status,
        "id_number": user.id_number,
        "class_dept": user.class_dept,
    }


def book_to_dict(book):
    return {
        "id": book.id,
        "title": book.title,
        "author": book.author,
        "publisher": book.publisher,
        "isbn": book.isbn,
        "barcode": book.barcode,
        "category": book.category,
        "publication_year": book.publication_year,
        "language": book.language,
        "shelf_location": book.shelf_location,
        "status": book.status,
        "status_display": status_display(book.status),
    }


def borrow_to_dict(record):
    return {
        "id": record.id,
        "user_id": record.user_id,
        "book_id": record.book_id,
        "book_title": record.book.title,
        "borrow_date": _iso(record.borrow_date),
        "due_date": _iso(record.due_date),
        "return_date": _iso(record.return_date),
        "status": record.status,
        "renewal_count": record.renewal_count,
    }


def reservation_to_dict(reservation, today=None):
    return {
        "id": reservation.id,
        "user_id": reservation.user_id,
        "book_id": reservation.book_id,
        "book_title": reservation.book.title,
        "reservation_date": _iso(reservation.reservation_date),
        "expiry_date": _iso(reservation.expiry_date),
        "queue_position": reservation.queue_position,
        "status": reservation.status,
        "display_status": effective_status(reservation, today),
        "days_until_expiry": days_until_expiry(reservation, today),
        "notification_sent": reservation.notification_sent,
        "self_pickup_deadline": _iso(reservation.self_pickup_deadline),
        "pickup_notification_date": _iso(reservation.pickup_notification_date),
        "cancellation_reason": reservation.cancellation_reason,
        "borrow_id": reservation.borrow_id,
    }


def fine_to_dict(fine):
    return {
        "id": fine.id,
        "user_id": fine.user_id,
        "borrow_id": fine.borrow_id,
        "book_title": fine.borrow.book.title,
        "fine_amount": money(fine.fine_amount),
        "amount_paid": money(fine.amount_paid),
        "balance_due": money(fine.balance_due),
        "payment_status": fine.payment_status,
        "fine_reason": fine.fine_reason,
        "fine_date": _iso(fine.fine_date),
        "payment_date": _iso(fine.payment_date),
        "collected_by": fine.collected_by,
    }


def receipt_to_dict(receipt):
    return {
        "receipt_number": receipt.receipt_number,
        "user_id": receipt.user_id,
        "librarian_id": receipt.librarian_id,
        "total_paid": money(receipt.total_amount_paid),
        "cash_received": money(receipt.cash_received),
        "change": money(receipt.change_given),
        "payment_method": receipt.payment_method,
        "transaction_date": _iso(receipt.transaction_date),
        "fine_ids": [int(i) for i in receipt.fine_ids.split(",") if i],
    }


def letter_to_dict(letter):
    return {
        "letter_number": letter.letter_number,
        "user_id": letter.user_id,
        "letter_type": letter.letter_type,
        "total_amount": money(letter.total_fine_amount),
        "fine_ids": [int(i) for i in letter.fine_ids.split(",") if i],
        "letter_content": letter.letter_content,
        "issue_date": _iso(letter.issue_date),
    }


def notification_to_dict(notification):
    return {
        "id": notification.id,
        "type": notification.notification_type,
        "title": notification.title,
        "message": notification.message,
        "related_reservation_id": notification.related_reservation_id,
        "sent_date": _iso(notification.sent_date),
        "read": notification.read_status,
    }
