"""
Transaction Helper Service

Unit-of-work boundary for service operations: commit on success, roll back
on any exception, and surface database failures as PersistenceError.
"""

from functools import wraps
from typing import Callable
import logging
from sqlalchemy.exc import SQLAlchemyError
from app import db
from errors import PersistenceError

logger = logging.getLogger(__name__)

class TransactionHelper:
    """Helper class for managing database transactions safely"""

    @staticmethod
    def with_transaction(func: Callable) -> Callable:
        """
        Decorator that wraps a function in a database transaction.

        The session is committed when the function returns and rolled back
        when it raises. SQLAlchemy errors are re-raised as PersistenceError
        with the driver message passed through; service errors
        (NotFoundError, ValidationError, ...) propagate unchanged.

        Usage:
            @TransactionHelper.with_transaction
            def update_tracking(self, case_id, ...):
                # Your database operations here
                pass
        """
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                result = func(*args, **kwargs)
                db.session.commit()
                return result
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(f"Transaction error in {func.__name__}: {str(e)}")
                raise PersistenceError(str(getattr(e, 'orig', None) or e)) from e
            except Exception:
                db.session.rollback()
                raise
        return wrapper
