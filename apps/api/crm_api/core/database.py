from __future__ import annotations

import logging
from collections.abc import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from crm_api.core.config import get_settings
from crm_api.core.errors import ConflictIgnorable, ignore_conflicts

logger = logging.getLogger("crm_api.database")

LEGACY_INDEXES = ["ix_users_username"]


class Base(DeclarativeBase):
    pass


engine = create_engine(get_settings().database_url, pool_pre_ping=True, future=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_db() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def drop_legacy_index(bind: Engine, index_name: str) -> None:
    try:
        with bind.begin() as connection:
            connection.execute(text(f"DROP INDEX {index_name}"))
    except SQLAlchemyError as exc:
        raise ConflictIgnorable(f"legacy index {index_name} not dropped: {exc}") from exc
    logger.info("database.legacy_index_dropped", extra={"index_name": index_name})


def drop_legacy_indexes(bind: Engine) -> None:
    for index_name in LEGACY_INDEXES:
        with ignore_conflicts(logger, "database.legacy_index_missing", index_name=index_name):
            drop_legacy_index(bind, index_name)
