import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import CollaboratorFailure

logger = logging.getLogger(__name__)


@contextmanager
def db_errors(action: str, db=None):
    """Log database failures and re-raise them as CollaboratorFailure"""
    try:
        yield
    except SQLAlchemyError as e:
        if db is not None:
            db.rollback()
        logger.exception(f"Database error during {action}")
        raise CollaboratorFailure(f"{action} failed: {e}") from e
