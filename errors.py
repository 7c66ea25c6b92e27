# errors.py
# Domain errors, rendered as JSON by the app error handler


class LibraryError(Exception):
    kind = "library_error"
    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"success": False, "error": self.kind, "message": self.message}


# ----------------------------
# Kinds
# ----------------------------
class ValidationError(LibraryError):
    kind = "validation_error"
    status_code = 400


class AuthorizationError(LibraryError):
    kind = "authorization_error"
    status_code = 403


class NotFoundError(LibraryError):
    kind = "not_found"
    status_code = 404


class ConflictError(LibraryError):
    kind = "conflict"
    status_code = 409


class PersistenceError(LibraryError):
    kind = "persistence_error"
    status_code = 500


# ----------------------------
# Circulation
# ----------------------------
class UserInactiveError(AuthorizationError):
    kind = "user_inactive"


class BorrowLimitExceededError(ConflictError):
    kind = "borrow_limit_exceeded"


class BookUnavailableError(ConflictError):
    kind = "book_unavailable"


class AlreadyBorrowedError(ConflictError):
    kind = "already_borrowed"


class NotBorrowedError(ConflictError):
    kind = "not_borrowed"


class ReservationNotAllowedError(ConflictError):
    kind = "reservation_not_allowed"


class AlreadyReservedError(ConflictError):
    kind = "already_reserved"


# ----------------------------
# Fines
# ----------------------------
class InsufficientPaymentError(ConflictError):
    kind = "insufficient_payment"
