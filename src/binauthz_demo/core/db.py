import logging
from functools import lru_cache

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from binauthz_demo.core.config import settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def get_engine(uri: str = settings.STATE_DB_URI) -> Engine:
    if uri in ("sqlite://", "sqlite:///:memory:"):
        # a single shared connection keeps the in-memory database alive
        engine = create_engine(
            uri,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(uri, echo=settings.ENV == "debug")
    init_db(engine)
    return engine


def init_db(engine: Engine) -> None:
    # registers StepRecord on the shared metadata
    from binauthz_demo.models.step_record import StepRecord  # noqa: F401

    logger.debug("Ensuring step ledger schema at %s", engine.url)
    SQLModel.metadata.create_all(engine)


def get_session(uri: str = settings.STATE_DB_URI) -> Session:
    return Session(get_engine(uri), expire_on_commit=False)
