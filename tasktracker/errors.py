"""Error taxonomy shared by the task handlers and the HTTP layer.

Every error carries the HTTP status it maps to and a message that is safe to
show to the client.
"""

from typing import Optional


class TaskTrackerError(Exception):
    """Base class for errors translated into an HTTP response."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(TaskTrackerError):
    status_code = 401
    default_message = "Unauthorized"


class InvalidInput(TaskTrackerError):
    status_code = 400
    default_message = "Invalid input"


class Forbidden(TaskTrackerError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(TaskTrackerError):
    status_code = 404
    default_message = "Not found"


class Internal(TaskTrackerError):
    """Unexpected failure; the message never includes internal detail."""
