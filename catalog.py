from fuzzywuzzy import fuzz
from sqlalchemy import or_

from errors import NotFoundError, ValidationError
from models import Book, BookStatus

FUZZY_THRESHOLD = 70

STATUS_DISPLAY = {
    BookStatus.AVAILABLE: "Available",
    BookStatus.BORROWED: "Borrowed",
    BookStatus.RESERVED: "Reserved",
    BookStatus.MAINTENANCE: "Under Maintenance",
}


def status_display(status):
    return STATUS_DISPLAY.get(status, "Unavailable")


def _shelved():
    return Book.query.filter(Book.status != BookStatus.DISPOSED)


# ----------------------------
# Search
# ----------------------------
def search_books(title="", author="", isbn="", category="", year=""):
    query = _shelved()

    if title:
        query = query.filter(Book.title.ilike(f"%{title}%"))
    if author:
        query = query.filter(Book.author.ilike(f"%{author}%"))
    if isbn:
        query = query.filter(Book.isbn.ilike(f"%{isbn}%"))
    if category:
        query = query.filter(Book.category.ilike(f"%{category}%"))
    if year:
        try:
            query = query.filter(Book.publication_year == int(year))
        except ValueError:
            raise ValidationError(f"Invalid publication year: {year!r}.")

    return query.order_by(Book.title.asc()).all()


def suggest_titles(text, limit=5):
    """Close title matches for a search that found nothing."""
    text = (text or "").lower().strip()
    if not text:
        return []

    scored = []
    for book in _shelved().all():
        score = fuzz.partial_ratio(text, book.title.lower())
        if score >= FUZZY_THRESHOLD:
            scored.append((score, book))

    scored.sort(key=lambda item: (-item[0], item[1].title))
    return [book for _, book in scored[:limit]]


def get_book(book_id):
    book = _shelved().filter(Book.id == book_id).first()
    if book is None:
        raise NotFoundError("Book not found.")
    return book


def find_by_code(code):
    """Look a book up by barcode or ISBN, as the checkout scanner does."""
    code = (code or "").strip()
    if not code:
        raise ValidationError("Please enter a barcode or ISBN.")

    book = _shelved().filter(or_(Book.barcode == code, Book.isbn == code)).first()
    if book is None:
        raise NotFoundError("Book not found. Please check the barcode/ISBN.")
    return book
