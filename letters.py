# letters.py
# Bilingual (Malay / English) fine letters, rendered from templates/letters/

from flask import render_template

from models import Role


def user_type_label(role):
    return "Pelajar" if role == Role.STUDENT else "Kakitangan"


def render_letter(letter_type, user, lines, total, currency):
    """Render the letter body.

    ``lines`` is a list of ``(book_title, amount, reason)`` tuples.
    """
    return render_template(
        f"letters/{letter_type}.txt",
        user=user,
        user_type=user_type_label(user.role),
        lines=lines,
        total=total,
        currency=currency,
    )
