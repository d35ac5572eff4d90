from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool
import structlog

from core.config import settings

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    pass


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    # Order items cascade and addresses restrict only with FK enforcement on
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str) -> Engine:
    """Engine for ``url``: SQLite in dev/test, pooled PostgreSQL otherwise."""
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=settings.SQLALCHEMY_ECHO,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool if ":memory:" in url else None,
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        url,
        echo=settings.SQLALCHEMY_ECHO,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(bind: Engine = engine) -> None:
    """Create missing tables (dev/test; production schema changes go through migrations)."""
    import models  # noqa: F401

    Base.metadata.create_all(bind=bind)


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def db_session() -> Generator:
    """Session for work outside a request, e.g. Celery tasks. Commits on success."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        logger.warning("db_session_rolled_back")
        db.rollback()
        raise
    finally:
        db.close()
