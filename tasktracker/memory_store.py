"""In-memory implementation of the storage port.

Holds transient ORM instances in dicts; used to exercise the task handlers
without a database. Same contract as `crud.SqlStore`.
"""

from __future__ import annotations

import datetime as dt
import itertools
from typing import Dict, Optional, Sequence

from . import models
from .ports import TaskFilter


class InMemoryStore:
    def __init__(self) -> None:
        self.users: Dict[str, models.User] = {}
        self.tasks: Dict[str, models.Task] = {}
        # insertion order breaks ties between equal timestamps
        self._seq = itertools.count()
        self._order: Dict[str, int] = {}

    def get_user_by_email(self, email: str) -> Optional[models.User]:
        norm = (email or "").strip().lower()
        return next((u for u in self.users.values() if u.email == norm), None)

    def create_user(self, email, name=None, image=None, password_hash=None) -> models.User:
        now = dt.datetime.now(dt.timezone.utc)
        user = models.User(
            id=models.new_id(),
            email=(email or "").strip().lower(),
            name=name,
            image=image,
            password_hash=password_hash,
            created_at=now,
            updated_at=now,
        )
        self.users[user.id] = user
        return user

    def get_task(self, task_id: str) -> Optional[models.Task]:
        return self.tasks.get(task_id)

    def create_task(self, owner_id: str, title: str) -> models.Task:
        task = models.Task(
            id=models.new_id(),
            title=title,
            done=False,
            user_id=owner_id,
            created_at=dt.datetime.now(dt.timezone.utc),
        )
        self.tasks[task.id] = task
        self._order[task.id] = next(self._seq)
        return task

    def _matching(self, where: TaskFilter) -> list[models.Task]:
        needle = (where.title_contains or "").lower()
        return [
            t for t in self.tasks.values()
            if t.user_id == where.owner_id and (not needle or needle in t.title.lower())
        ]

    def find_tasks(self, where: TaskFilter, offset: int, limit: int) -> Sequence[models.Task]:
        items = sorted(
            self._matching(where),
            key=lambda t: (t.created_at, self._order[t.id]),
            reverse=True,
        )
        return items[offset:offset + limit]

    def count_tasks(self, where: TaskFilter) -> int:
        return len(self._matching(where))

    def set_task_done(self, task_id: str, done: bool) -> Optional[models.Task]:
        task = self.tasks.get(task_id)
        if task is None:
            return None
        task.done = done
        return task
