"""Database configuration for SQLAlchemy.

This module sets up the SQLAlchemy engine, declarative base, and session factory
for the relational store that holds users and tasks. The URL comes from
`settings.DATABASE_URL`; SQLite (file or in-memory) and any other backend
supported by SQLAlchemy are accepted.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool

from .settings import settings


class Base(DeclarativeBase):
    """Declarative base class for ORM models."""
    pass


def _make_engine(url: str):
    """Create an SQLAlchemy engine depending on the database URL."""
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if url.endswith(":///:memory:"):
            return create_engine(
                url,
                connect_args=connect_args,
                poolclass=StaticPool,
            )
        return create_engine(
            url,
            connect_args=connect_args,
            pool_pre_ping=True,
        )
    return create_engine(url, pool_pre_ping=True)


engine = _make_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def init_db() -> None:
    """Create missing tables; a no-op when the schema already exists."""
    from . import models  # noqa: F401  (registers the mappers on Base)

    Base.metadata.create_all(bind=engine)
