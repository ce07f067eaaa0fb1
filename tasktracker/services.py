"""Task query and mutation handlers.

Each handler receives the storage collaborator and the caller's session user
id explicitly. Failures are raised as `errors.TaskTrackerError` subclasses and
translated to HTTP responses by the application.
"""

import logging
import math
from typing import Any, Optional

from . import errors, models, schemas
from .ports import Store, TaskFilter

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def _require_user(session_user_id: Optional[str]) -> str:
    if not session_user_id:
        raise errors.Unauthorized()
    return session_user_id


def clamp_page(page: Optional[int]) -> int:
    """Return `page` or the default, never below 1."""
    return max(1, DEFAULT_PAGE if page is None else page)


def clamp_page_size(page_size: Optional[int]) -> int:
    """Return `page_size` or the default, clamped to [1, MAX_PAGE_SIZE]."""
    value = DEFAULT_PAGE_SIZE if page_size is None else page_size
    return min(MAX_PAGE_SIZE, max(1, value))


def validate_title(title: Any) -> str:
    """Return the trimmed title or raise InvalidInput."""
    if not isinstance(title, str):
        raise errors.InvalidInput("Title is required")
    trimmed = title.strip()
    if not trimmed:
        raise errors.InvalidInput("Title cannot be empty")
    if len(trimmed) > models.TITLE_MAX_LENGTH:
        raise errors.InvalidInput(
            f"Title must be between 1 and {models.TITLE_MAX_LENGTH} characters"
        )
    return trimmed


def list_tasks(
    store: Store,
    session_user_id: Optional[str],
    q: Optional[str] = None,
    page: Optional[int] = None,
    page_size: Optional[int] = None,
) -> schemas.TaskPage:
    """Return one page of the caller's tasks, most recent first."""
    user_id = _require_user(session_user_id)
    page = clamp_page(page)
    page_size = clamp_page_size(page_size)

    where = TaskFilter(owner_id=user_id, title_contains=q or None)
    total = store.count_tasks(where)
    offset = (page - 1) * page_size
    # past the last row; the offset may not even fit a database integer
    items = [] if offset >= total else store.find_tasks(where, offset=offset, limit=page_size)

    return schemas.TaskPage(
        items=[schemas.TaskOut.model_validate(t) for t in items],
        page=page,
        page_size=page_size,
        total=total,
        total_pages=math.ceil(total / page_size),
    )


def create_task(store: Store, session_user_id: Optional[str], title: Any) -> models.Task:
    """Create a not-done task owned by the caller."""
    user_id = _require_user(session_user_id)
    task = store.create_task(owner_id=user_id, title=validate_title(title))
    logger.info("task created", extra={"user": user_id, "task": task.id})
    return task


def toggle_task(store: Store, session_user_id: Optional[str], task_id: str) -> models.Task:
    """Flip `done` on one of the caller's tasks.

    Existence is checked before ownership, so an unknown id is NotFound for
    every caller.
    """
    user_id = _require_user(session_user_id)
    task = store.get_task(task_id)
    if task is None:
        raise errors.NotFound("Task not found")
    if task.user_id != user_id:
        logger.warning("toggle refused for non-owner", extra={"user": user_id, "task": task_id})
        raise errors.Forbidden("Forbidden: You can only modify your own tasks")

    # no version check; concurrent toggles are last-write-wins
    updated = store.set_task_done(task_id, not task.done)
    if updated is None:
        raise errors.NotFound("Task not found")
    return updated
