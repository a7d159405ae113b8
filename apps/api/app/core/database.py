from __future__ import annotations

import logging
from collections.abc import Generator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from app.core.config import get_settings


logger = logging.getLogger("app.database")


class Base(DeclarativeBase):
    pass


SessionLocal: sessionmaker[Session] = sessionmaker(autocommit=False, autoflush=False)
_engine: Engine | None = None


def init_engine(database_url: str | None = None) -> Engine:
    """Create the process-wide engine and bind the session factory to it.

    Calling it again returns the engine that already exists.
    """

    global _engine
    if _engine is not None:
        return _engine

    settings = get_settings()
    url = database_url or settings.database_url
    options: dict[str, object] = {"pool_pre_ping": settings.db_pool_pre_ping}
    if not url.startswith("sqlite"):
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow

    _engine = create_engine(url, **options)
    SessionLocal.configure(bind=_engine)
    logger.info("database.engine_initialized")
    return _engine


def dispose_engine() -> None:
    global _engine
    if _engine is None:
        return
    _engine.dispose()
    _engine = None
    logger.info("database.engine_disposed")


def get_db() -> Generator[Session, None, None]:
    if _engine is None:
        init_engine()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
