# fines.py
# Overdue fines, payments and fine letters

from collections.abc import Mapping
from datetime import date, datetime
from uuid import uuid4

from flask import current_app
from sqlalchemy import case, func, or_

from errors import (
    ConflictError,
    InsufficientPaymentError,
    NotBorrowedError,
    NotFoundError,
    ValidationError,
)
from extension import db
from letters import render_letter
from models import (
    ZERO,
    BookStatus,
    Borrow,
    BorrowStatus,
    Fine,
    FineLetter,
    LetterType,
    PaymentStatus,
    Receipt,
    Role,
    User,
)
from money import parse_money, to_money
from principal import require_role
from rules import policy_for
from transaction import transaction


def _new_number(prefix, when):
    return f"{prefix}-{when:%Y-%m}-{uuid4().hex[:6].upper()}"


# ----------------------------
# Computation
# ----------------------------
def overdue_days(record, today=None):
    """Days past due: up to today for open loans, up to the return date otherwise."""
    today = today or date.today()
    if record.status == BorrowStatus.LOST:
        return 0
    end = record.return_date if record.status == BorrowStatus.RETURNED else today
    return max(0, (end - record.due_date).days)


def overdue_fine(record, today=None):
    rate = policy_for(record.user.role).overdue_fine_per_day
    return to_money(overdue_days(record, today) * rate)


def compute_overdue_fine(borrow_id, today=None):
    record = db.session.get(Borrow, borrow_id)
    if record is None:
        raise NotFoundError("Borrow record not found.")
    return overdue_fine(record, today)


def _new_fine(record, amount, reason, today):
    return Fine(
        user_id=record.user_id,
        borrow_id=record.id,
        fine_amount=amount,
        amount_paid=ZERO,
        balance_due=amount,
        payment_status=PaymentStatus.UNPAID,
        fine_reason=reason,
        fine_date=today,
    )


def assess_fine(principal, borrow_id, today=None):
    """Record the overdue fine of a loan as a ``Fine`` row."""
    require_role(principal, Role.LIBRARIAN)
    today = today or date.today()

    with transaction():
        record = db.session.get(Borrow, borrow_id)
        if record is None:
            raise NotFoundError("Borrow record not found.")
        if record.fines:
            raise ConflictError("A fine has already been recorded for this loan.")

        days = overdue_days(record, today)
        amount = overdue_fine(record, today)
        if amount <= ZERO:
            raise ValidationError("This loan has no overdue fine to assess.")

        fine = _new_fine(record, amount, f"Overdue {days} day(s)", today)
        db.session.add(fine)

    current_app.logger.info(
        "Fine %s of %s assessed on loan %s by librarian %s",
        fine.id, amount, borrow_id, principal.user_id,
    )
    return fine


def report_lost(principal, borrow_id, replacement_cost, today=None):
    require_role(principal, Role.LIBRARIAN)
    today = today or date.today()
    cost = parse_money(replacement_cost, "replacement cost")
    if cost <= ZERO:
        raise ValidationError("Replacement cost must be greater than zero.")

    with transaction():
        record = Borrow.query.filter_by(id=borrow_id).with_for_update().first()
        if record is None:
            raise NotFoundError("Borrow record not found.")
        if record.status != BorrowStatus.BORROWED:
            raise NotBorrowedError("Only books currently on loan can be reported lost.")

        record.status = BorrowStatus.LOST
        record.book.status = BookStatus.DISPOSED

        fine = _new_fine(record, cost, "Lost book", today)
        db.session.add(fine)

    current_app.logger.info(
        "Loan %s reported lost by librarian %s, replacement %s",
        borrow_id, principal.user_id, cost,
    )
    return fine


# ----------------------------
# Payment
# ----------------------------
def _fine_ids(fine_ids):
    if fine_ids is None:
        fine_ids = []
    if not isinstance(fine_ids, (list, tuple)):
        raise ValidationError("Fines must be selected as a list of fine ids.")

    ids = []
    for fine_id in fine_ids:
        if isinstance(fine_id, (bool, float)):
            raise ValidationError("Invalid fine selection.")
        try:
            ids.append(int(fine_id))
        except (TypeError, ValueError):
            raise ValidationError("Invalid fine selection.")
    if not ids:
        raise ValidationError("Please select at least one fine.")
    if len(set(ids)) != len(ids):
        raise ValidationError("A fine was selected more than once.")
    return ids


def _tendered(ids, amounts):
    if amounts is None:
        amounts = {}
    if not isinstance(amounts, Mapping):
        raise ValidationError("Payment amounts must be given per fine id.")

    tendered = {}
    for fine_id in ids:
        raw = amounts.get(fine_id, amounts.get(str(fine_id)))
        if raw is None:
            raise ValidationError(f"No payment amount given for fine #{fine_id}.")
        amount = parse_money(raw, f"payment for fine #{fine_id}")
        if amount <= ZERO:
            raise ValidationError(f"Payment for fine #{fine_id} must be greater than zero.")
        tendered[fine_id] = amount
    return tendered


def _payable_fines(user_id, ids, tendered, lock=False):
    query = Fine.query.filter(Fine.id.in_(ids))
    if lock:
        query = query.with_for_update().populate_existing()
    found = {fine.id: fine for fine in query.all()}

    for fine_id in ids:
        fine = found.get(fine_id)
        if fine is None or fine.user_id != user_id:
            raise NotFoundError(f"Fine #{fine_id} not found for this user.")
        if fine.payment_status == PaymentStatus.PAID:
            raise ConflictError(f"Fine #{fine_id} has already been paid.")
        if tendered[fine_id] > fine.balance_due:
            raise ValidationError(
                f"Payment for fine #{fine_id} exceeds the balance due of {to_money(fine.balance_due)}."
            )
    return found


def process_payment(principal, user_id, fine_ids, amounts, cash_received, now=None):
    """Apply a cash payment to one or more fines and issue a receipt.

    Every check, including that the cash covers the total, happens before
    any write.  The fine updates and the receipt commit together.
    """
    require_role(principal, Role.LIBRARIAN)
    now = now or datetime.utcnow()

    ids = _fine_ids(fine_ids)
    cash = parse_money(cash_received, "cash received")
    if cash <= ZERO:
        raise ValidationError("Cash received must be greater than zero.")
    tendered = _tendered(ids, amounts)

    if db.session.get(User, user_id) is None:
        raise NotFoundError("User not found.")
    _payable_fines(user_id, ids, tendered)

    total = to_money(sum(tendered.values(), ZERO))
    if cash < total:
        raise InsufficientPaymentError(
            f"Cash received ({cash}) is less than the total payment ({total})."
        )

    with transaction():
        fines = _payable_fines(user_id, ids, tendered, lock=True)

        for fine_id in ids:
            fine = fines[fine_id]
            fine.amount_paid = to_money(fine.amount_paid + tendered[fine_id])
            fine.balance_due = to_money(fine.fine_amount - fine.amount_paid)
            if fine.balance_due <= ZERO:
                fine.payment_status = PaymentStatus.PAID
                fine.payment_date = now
            else:
                fine.payment_status = PaymentStatus.UNPAID
            fine.collected_by = principal.user_id

        receipt = Receipt(
            receipt_number=_new_number("REC", now),
            user_id=user_id,
            librarian_id=principal.user_id,
            total_amount_paid=total,
            cash_received=cash,
            change_given=to_money(cash - total),
            payment_method="cash",
            transaction_date=now,
            fine_ids=",".join(str(fine_id) for fine_id in ids),
        )
        db.session.add(receipt)

    current_app.logger.info(
        "Payment of %s for user %s recorded by librarian %s (receipt %s)",
        total, user_id, principal.user_id, receipt.receipt_number,
    )
    return receipt


# ----------------------------
# Letters
# ----------------------------
def letter_amount(fine):
    balance = to_money(fine.balance_due)
    return balance if balance > ZERO else to_money(fine.fine_amount)


def generate_letter(principal, user_id, fine_ids, letter_type, today=None):
    require_role(principal, Role.LIBRARIAN)
    today = today or date.today()

    if letter_type not in LetterType.ALL:
        raise ValidationError(f"Unknown letter type: {letter_type!r}.")
    ids = _fine_ids(fine_ids)

    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found.")

    found = {fine.id: fine for fine in Fine.query.filter(Fine.id.in_(ids)).all()}
    lines = []
    for fine_id in ids:
        fine = found.get(fine_id)
        if fine is None or fine.user_id != user_id:
            raise NotFoundError(f"Fine #{fine_id} not found for this user.")
        lines.append((fine.borrow.book.title, letter_amount(fine), fine.fine_reason))

    total = to_money(sum((amount for _, amount, _ in lines), ZERO))
    content = render_letter(letter_type, user, lines, total, current_app.config["CURRENCY"])

    with transaction():
        letter = FineLetter(
            letter_number=_new_number("LTR", today),
            user_id=user_id,
            librarian_id=principal.user_id,
            letter_type=letter_type,
            total_fine_amount=total,
            fine_ids=",".join(str(fine_id) for fine_id in ids),
            letter_content=content,
            issue_date=today,
        )
        db.session.add(letter)

    current_app.logger.info(
        "%s letter %s issued to user %s", letter_type, letter.letter_number, user_id
    )
    return letter


# ----------------------------
# Queries
# ----------------------------
def _outstanding():
    return or_(Fine.payment_status == PaymentStatus.UNPAID, Fine.balance_due > 0)


def outstanding_fines(user_id):
    return (
        Fine.query.filter(Fine.user_id == user_id, _outstanding())
        .order_by(Fine.fine_date.asc(), Fine.id.asc())
        .all()
    )


def outstanding_total(user_id):
    total = (
        db.session.query(func.coalesce(func.sum(Fine.balance_due), 0))
        .filter(Fine.user_id == user_id, Fine.payment_status == PaymentStatus.UNPAID)
        .scalar()
    )
    return to_money(total)


def fine_overview():
    """Users with outstanding fines, largest balance first."""
    total_amount = func.sum(Fine.balance_due)
    latest = func.max(Fine.fine_date)
    rows = (
        db.session.query(User, func.count(Fine.id), total_amount, latest)
        .join(Fine, Fine.user_id == User.id)
        .filter(_outstanding())
        .group_by(User.id)
        .order_by(total_amount.desc(), latest.desc())
        .all()
    )
    return [
        {
            "user": user,
            "total_fines": count,
            "total_amount": to_money(amount or 0),
            "latest_fine_date": latest_date,
        }
        for user, count, amount, latest_date in rows
    ]


def fine_stats():
    outstanding = _outstanding()
    row = db.session.query(
        func.count(case((outstanding, 1))),
        func.count(case(((Fine.payment_status == PaymentStatus.PAID) & (Fine.balance_due <= 0), 1))),
        func.count(case(((Fine.payment_status == PaymentStatus.UNPAID) & (Fine.amount_paid > 0), 1))),
        func.count(func.distinct(Fine.user_id)),
        func.sum(case((outstanding, Fine.balance_due), else_=0)),
    ).one()

    return {
        "total_unpaid": row[0],
        "total_paid": row[1],
        "total_partial": row[2],
        "total_users_with_fines": row[3],
        "total_outstanding_amount": to_money(row[4] or 0),
    }
