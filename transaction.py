from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from errors import PersistenceError
from extension import db


@contextmanager
def transaction():
    """Commit the session when the block exits cleanly, roll back otherwise.

    ``SQLAlchemyError`` is logged and re-raised as ``PersistenceError`` so
    callers only ever see the library error taxonomy.
    """
    try:
        yield db.session
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Database error, transaction rolled back")
        raise PersistenceError("The library database could not complete the request.") from exc
    except BaseException:
        db.session.rollback()
        raise
