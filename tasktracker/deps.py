"""FastAPI dependencies for DB sessions, storage and authentication.

Provides:
- get_db: scoped SQLAlchemy session generator.
- get_store: storage collaborator bound to that session.
- get_session: the caller's SessionIdentity, or None when unauthenticated.
"""

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from . import auth
from .crud import SqlStore
from .database import SessionLocal
from .ports import Store


def get_db():
    """Yield a SQLAlchemy session and ensure it is closed afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_store(db: Session = Depends(get_db)) -> Store:
    return SqlStore(db)


def get_session(request: Request) -> Optional[auth.SessionIdentity]:
    """Return the authenticated identity if a valid token exists; otherwise None."""
    return auth.read_session(request)


def session_user_id(session: Optional[auth.SessionIdentity]) -> Optional[str]:
    return session.user_id if session else None
