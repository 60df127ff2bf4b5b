"""
Database connection and transactional sessions.

Any SQLAlchemy URL works. PostgreSQL is used in production; SQLite (file or
in-memory) for local runs and tests.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence

from sqlalchemy import create_engine, insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from takedown_monitor.storage.models import Base

logger = logging.getLogger(__name__)

# Rows per multi-VALUES insert (keeps SQLite under its bound-parameter limit)
INSERT_CHUNK_SIZE = 50


class Database:
    """
    Engine plus session factory for one database URL.

    Args:
        url: SQLAlchemy database URL
        echo: Log emitted SQL
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url

        kwargs: dict[str, Any] = {"echo": echo}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:") or ":memory:" in url:
                # Single shared connection so every session sees the same in-memory DB
                kwargs["poolclass"] = StaticPool
        else:
            kwargs.update(pool_pre_ping=True, pool_size=10, max_overflow=20)

        self.engine = create_engine(url, **kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    def create_all(self) -> None:
        """Create all tables (and the SQLite file's directory) if missing."""
        database = self.engine.url.database
        if self.engine.dialect.name == "sqlite" and database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)

        Base.metadata.create_all(bind=self.engine)
        logger.info("Database schema ready (%s)", self.engine.dialect.name)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Session that commits on success and rolls back on any error."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error("Database session error: %s", e)
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()

    def __repr__(self) -> str:
        return f"Database(url='{self.url.split('@')[-1]}')"


def insert_ignore(
    session: Session,
    model: Any,
    rows: Sequence[dict[str, Any]],
    index_elements: Sequence[str],
) -> int:
    """
    INSERT ... ON CONFLICT DO NOTHING.

    Args:
        session: Open session
        model: ORM model class
        rows: Column dicts
        index_elements: Columns of the unique constraint that may conflict

    Returns:
        Number of rows actually inserted
    """
    if not rows:
        return 0

    dialect = session.get_bind().dialect.name
    if dialect in ("postgresql", "sqlite"):
        dialect_insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        inserted = 0
        for start in range(0, len(rows), INSERT_CHUNK_SIZE):
            chunk = list(rows[start:start + INSERT_CHUNK_SIZE])
            stmt = dialect_insert(model).values(chunk).on_conflict_do_nothing(index_elements=list(index_elements))
            result = session.execute(stmt)
            inserted += max(result.rowcount or 0, 0)
        return inserted

    # Portable fallback: one savepoint per row
    inserted = 0
    for row in rows:
        try:
            with session.begin_nested():
                session.execute(insert(model).values(**row))
            inserted += 1
        except IntegrityError:
            continue
    return inserted


_database: Optional[Database] = None


def get_database() -> Database:
    """Process-wide Database built from ``config.DATABASE_URL``."""
    global _database
    if _database is None:
        from takedown_monitor.config import config

        _database = Database(config.DATABASE_URL)
    return _database
