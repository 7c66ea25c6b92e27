from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from extension import db
from models import Notification

RESERVATION_READY = "reservation_ready"


def notify_pickup_ready(reservation, now=None):
    """Tell a reservation holder their book is waiting at the desk.

    Runs after the return has been committed.  Failures are logged and
    reported through the return value, never raised.
    """
    now = now or datetime.utcnow()
    reservation_id = reservation.id
    user_id = reservation.user_id
    hours = current_app.config["PICKUP_WINDOW_HOURS"]

    try:
        db.session.add(Notification(
            user_id=user_id,
            notification_type=RESERVATION_READY,
            title="Book Ready for Pickup",
            message=(
                f"Your reserved book '{reservation.book.title}' is now ready for pickup. "
                f"Please collect within {hours} hours."
            ),
            related_reservation_id=reservation_id,
            sent_date=now,
        ))
        reservation.notification_sent = True
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(
            "Could not notify user %s about reservation %s", user_id, reservation_id
        )
        return False

    current_app.logger.info("Pickup notification sent to user %s (reservation %s)", user_id, reservation_id)
    return True


def list_notifications(user_id):
    return (
        Notification.query.filter_by(user_id=user_id)
        .order_by(Notification.sent_date.desc())
        .all()
    )


def unread_count(user_id):
    return Notification.query.filter_by(user_id=user_id, read_status=False).count()


def mark_all_read(user_id):
    Notification.query.filter_by(user_id=user_id, read_status=False).update(
        {"read_status": True}, synchronize_session=False
    )
    db.session.commit()
