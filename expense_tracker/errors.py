"""
Domain Error Taxonomy

Every failure a user action can run into maps to exactly one of these.
Stores never raise them at callers; they travel inside an OperationResult
(see expense_tracker.models.results) so every call site handles success and
failure through the same channel.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classification carried by every failed operation."""
    VALIDATION = "validation"
    CATEGORY_IN_USE = "category_in_use"
    PERSISTENCE = "persistence"
    NOT_FOUND = "not_found"
    NOT_AUTHENTICATED = "not_authenticated"


class TrackerError(Exception):
    """Base exception for the expense tracker core."""

    kind: ErrorKind = ErrorKind.PERSISTENCE


class ValidationError(TrackerError):
    """Caller-supplied data violates an invariant."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class CategoryInUseError(TrackerError):
    """Category deletion blocked because expenses still reference it."""

    kind = ErrorKind.CATEGORY_IN_USE

    def __init__(self, category_id: str, message: Optional[str] = None):
        self.category_id = category_id
        super().__init__(
            message
            or f"Category {category_id} is used by at least one expense and cannot be deleted"
        )


class PersistenceError(TrackerError):
    """A remote store operation failed (network, permission, quota)."""

    kind = ErrorKind.PERSISTENCE


class NotFoundError(TrackerError):
    """The operation targets an id that does not exist."""

    kind = ErrorKind.NOT_FOUND


class NotAuthenticatedError(TrackerError):
    """No user is signed in."""

    kind = ErrorKind.NOT_AUTHENTICATED

    def __init__(self, message: str = "Sign in before using the expense tracker"):
        super().__init__(message)


ERROR_CLASSES: dict[ErrorKind, type[TrackerError]] = {
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.CATEGORY_IN_USE: CategoryInUseError,
    ErrorKind.PERSISTENCE: PersistenceError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.NOT_AUTHENTICATED: NotAuthenticatedError,
}
