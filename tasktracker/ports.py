"""Port interface for the storage collaborator (repository boundary)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, runtime_checkable

from . import models


@dataclass(frozen=True)
class TaskFilter:
    """Predicate over tasks: owner equality plus an optional title substring.

    `title_contains` is matched case-insensitively and literally; it is never
    interpreted as query syntax.
    """

    owner_id: str
    title_contains: Optional[str] = None


@runtime_checkable
class Store(Protocol):
    """Query interface over `User` and `Task` records."""

    # users
    def get_user_by_email(self, email: str) -> Optional[models.User]:
        """Return a user by normalized email or None."""

    def create_user(
        self,
        email: str,
        name: Optional[str] = None,
        image: Optional[str] = None,
        password_hash: Optional[str] = None,
    ) -> models.User:
        """Persist a new user and return it with its assigned id."""

    # tasks
    def get_task(self, task_id: str) -> Optional[models.Task]:
        """Return a task by id or None when missing."""

    def create_task(self, owner_id: str, title: str) -> models.Task:
        """Persist a new not-done task owned by `owner_id`."""

    def find_tasks(self, where: TaskFilter, offset: int, limit: int) -> Sequence[models.Task]:
        """Return matching tasks, most recent first, within the window."""

    def count_tasks(self, where: TaskFilter) -> int:
        """Return the number of tasks matching `where`."""

    def set_task_done(self, task_id: str, done: bool) -> Optional[models.Task]:
        """Update `done` by id and return the stored task, or None if missing."""
