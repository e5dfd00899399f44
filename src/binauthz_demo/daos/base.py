import logging
from contextlib import contextmanager
from typing import Iterator, TypeVar

from sqlmodel import Session, SQLModel

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=SQLModel)


class BaseDao:
    """Base DAO bound to a single session for the lifetime of a CLI invocation."""

    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        try:
            yield self.session
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.error(f"Database session error: {e}", exc_info=True)
            raise
