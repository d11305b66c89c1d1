"""
BaseService -- abstract base for write-side services.

Responsibility:
    Common constructor and session-handling contract.  Concrete services
    receive a SQLAlchemy ``Session`` and a ``Clock``; they either run inside
    a caller-owned transaction (``flush()`` only) or own the boundary through
    ``_transaction()``, never both in the same method.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Generator

from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.logging_config import get_logger

logger = get_logger("services.base")


class BaseService(ABC):
    """
    Abstract base class for settlement services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller.  The session is
        never closed by the service.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    @contextmanager
    def _transaction(self, operation: str) -> Generator[Session, None, None]:
        """Commit on success, roll back and re-raise on any failure."""
        try:
            yield self.session
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.info("operation_rolled_back", extra={"operation": operation})
            raise
