"""
Errors raised by the presence core.
"""

from services.shared.db.exceptions import RecordNotFound, StorageError

__all__ = ["PresenceError", "ValidationError", "NotFoundError", "StorageError"]


class PresenceError(Exception):
    """Base class for presence errors surfaced to callers."""


class ValidationError(PresenceError, ValueError):
    """Missing or malformed required input."""


class NotFoundError(PresenceError, RecordNotFound):
    """The session id does not name a live session."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id
