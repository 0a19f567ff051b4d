"""Database bootstrap helpers shared by both services."""

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from stkpay.common.config import settings


IN_MEMORY_SQLITE_URLS = {"sqlite://", "sqlite:///:memory:"}


def build_engine(url: str) -> Engine:
    """Create an engine for `url`.

    An in-memory SQLite database only lives as long as its connection, so it
    is pinned to a single shared connection across threads.
    """

    if url in IN_MEMORY_SQLITE_URLS:
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(url, pool_pre_ping=True)


def build_session_factory(bound: Engine) -> sessionmaker:
    # `expire_on_commit=False` keeps ORM objects readable after commit in handlers.
    return sessionmaker(bind=bound, autoflush=False, autocommit=False, expire_on_commit=False)


# Single SQLAlchemy engine per process.
engine = build_engine(settings.database_url)
SessionLocal = build_session_factory(engine)


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""

    pass
