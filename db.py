from collections.abc import Generator
from typing import Annotated
import logging

from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

import config
from errors import RemoteError

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {}
    options: dict = {"connect_args": {"check_same_thread": False}}
    # in-memory sqlite lives and dies with its connection, so share one
    if url in ("sqlite://", "sqlite:///:memory:"):
        options["poolclass"] = StaticPool
    return options


engine = create_engine(
    config.DATABASE_URL,
    echo=config.SQL_ECHO,
    **_engine_options(config.DATABASE_URL),
)


def create_db_and_tables() -> None:
    """Create all tables in the database if they don't exist."""
    import models  # noqa: F401  registers the table models on the metadata

    SQLModel.metadata.create_all(engine)


def get_session() -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    with Session(engine) as session:
        yield session


def commit(session: Session) -> None:
    """Commit, turning any database failure into a RemoteError."""
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Database commit failed")
        raise RemoteError(str(getattr(exc, "orig", None) or exc)) from exc


SessionDep = Annotated[Session, Depends(get_session)]
