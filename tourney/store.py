import logging

from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from .models import db

logger = logging.getLogger(__name__)


def commit_or_raise(on_conflict: HTTPException):
    """
    Commit the session. A uniqueness violation raised by the store is the
    concurrent twin of an application-level duplicate check, so it surfaces
    as the same error.
    """
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        logger.warning(f"Store rejected write: {e.orig}")
        raise on_conflict


def lock_row(model, row_id: int):
    """Load ``model`` row ``row_id`` with ``SELECT ... FOR UPDATE``; None when absent."""
    return model.query.filter_by(id=row_id).with_for_update().first()
