from contextlib import contextmanager
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from ..models import Base
from ..repositories import MemoryRepositories, Repositories, SqlRepositories


def make_engine(database_url: str) -> Engine:
    """Build an engine tuned for the backing database.

    SQLite gets a single shared connection (StaticPool) with WAL enabled;
    anything else gets a QueuePool.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            pool_pre_ping=True,
        )

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

        return engine

    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


class SqlBackend:
    """Relational store: one session (and repository set) per request."""

    name = "sql"

    def __init__(self, engine: Engine, create_tables: bool = True):
        self.engine = engine
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        if create_tables:
            Base.metadata.create_all(bind=engine)

    @contextmanager
    def repositories(self) -> Iterator[Repositories]:
        db = self.SessionLocal()
        try:
            yield SqlRepositories(db)
        finally:
            db.close()


class MemoryBackend:
    """In-memory store constructed once at startup and shared by every request."""

    name = "memory"

    def __init__(self):
        self.repos = MemoryRepositories()

    @contextmanager
    def repositories(self) -> Iterator[Repositories]:
        yield self.repos


def build_backend(settings):
    if settings.store_backend == "memory":
        return MemoryBackend()
    return SqlBackend(make_engine(settings.database_url))


def get_repositories(request: Request) -> Iterator[Repositories]:
    """Dependency yielding the repositories for the current request."""
    with request.app.state.backend.repositories() as repos:
        yield repos
