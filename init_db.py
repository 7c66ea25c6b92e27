# init_db.py
# type: ignore
# pyright: ignore

from decimal import Decimal

from app import create_app
from extension import db
from models import BorrowingRule, Role


def seed_borrowing_rules(app):
    """Insert a borrowing rule per borrower type from the configured defaults."""
    created = 0
    for user_type in Role.BORROWERS:
        if BorrowingRule.query.filter_by(user_type=user_type).first():
            continue
        db.session.add(BorrowingRule(
            user_type=user_type,
            max_books_allowed=app.config["DEFAULT_MAX_BOOKS"],
            borrow_period_days=app.config["DEFAULT_BORROW_PERIOD_DAYS"],
            overdue_fine_per_day=Decimal(str(app.config["DEFAULT_OVERDUE_FINE_PER_DAY"])),
        ))
        created += 1
    db.session.commit()
    return created


def main():
    app = create_app()
    with app.app_context():
        db.create_all()
        created = seed_borrowing_rules(app)
        print(f"All tables created successfully! ({created} borrowing rules added)")


if __name__ == "__main__":
    main()
