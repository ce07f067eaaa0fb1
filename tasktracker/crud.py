"""SQLAlchemy implementation of the storage port.

`SqlStore` wraps one request-scoped `Session` and turns `TaskFilter` values
into where-clauses. Every call goes to the database; nothing is cached.
"""

from typing import Optional, Sequence
import datetime as dt

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from . import models
from .ports import TaskFilter


def _where(stmt, where: TaskFilter):
    """Apply owner and title predicates to a select over Task."""
    stmt = stmt.where(models.Task.user_id == where.owner_id)
    if where.title_contains:
        # autoescape keeps %, _ and the escape char literal
        stmt = stmt.where(models.Task.title.icontains(where.title_contains, autoescape=True))
    return stmt


class SqlStore:
    def __init__(self, db: Session):
        self.db = db

    # -------------------------------------------------------------------------
    # USERS
    # -------------------------------------------------------------------------
    def get_user_by_email(self, email: str) -> models.User | None:
        """Return a user by normalized email or None if not found."""
        norm = (email or "").strip().lower()
        if not norm:
            return None
        return self.db.query(models.User).filter(models.User.email == norm).first()

    def create_user(
        self,
        email: str,
        name: Optional[str] = None,
        image: Optional[str] = None,
        password_hash: Optional[str] = None,
    ) -> models.User:
        """Create a new user with a normalized email."""
        user = models.User(
            email=(email or "").strip().lower(),
            name=name,
            image=image,
            password_hash=password_hash,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    # -------------------------------------------------------------------------
    # TASKS
    # -------------------------------------------------------------------------
    def get_task(self, task_id: str) -> models.Task | None:
        """Return a task by its ID or None if not found."""
        return self.db.get(models.Task, task_id)

    def create_task(self, owner_id: str, title: str) -> models.Task:
        obj = models.Task(
            title=title,
            done=False,
            user_id=owner_id,
            created_at=dt.datetime.now(dt.timezone.utc),
        )
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def find_tasks(self, where: TaskFilter, offset: int, limit: int) -> Sequence[models.Task]:
        stmt = _where(select(models.Task), where)
        stmt = stmt.order_by(desc(models.Task.created_at), desc(models.Task.id))
        stmt = stmt.offset(offset).limit(limit)
        return self.db.scalars(stmt).all()

    def count_tasks(self, where: TaskFilter) -> int:
        stmt = _where(select(func.count()).select_from(models.Task), where)
        return self.db.scalar(stmt) or 0

    def set_task_done(self, task_id: str, done: bool) -> models.Task | None:
        """Persist the done flag for one task; return it or None if it is gone."""
        obj = self.get_task(task_id)
        if not obj:
            return None
        obj.done = done
        self.db.commit()
        self.db.refresh(obj)
        return obj
