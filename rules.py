from collections import namedtuple
from decimal import Decimal

from flask import current_app

from models import BorrowingRule

Policy = namedtuple(
    "Policy",
    "user_type max_books_allowed borrow_period_days overdue_fine_per_day",
)


def default_policy(user_type):
    cfg = current_app.config
    return Policy(
        user_type=user_type,
        max_books_allowed=cfg["DEFAULT_MAX_BOOKS"],
        borrow_period_days=cfg["DEFAULT_BORROW_PERIOD_DAYS"],
        overdue_fine_per_day=Decimal(str(cfg["DEFAULT_OVERDUE_FINE_PER_DAY"])),
    )


def policy_for(user_type):
    """Borrowing policy for a user type, falling back to configured defaults."""
    rule = BorrowingRule.query.filter_by(user_type=user_type).first()
    if rule is None:
        return default_policy(user_type)

    return Policy(
        user_type=rule.user_type,
        max_books_allowed=rule.max_books_allowed,
        borrow_period_days=rule.borrow_period_days,
        overdue_fine_per_day=Decimal(str(rule.overdue_fine_per_day)),
    )
