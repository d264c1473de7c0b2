from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Stable error identifiers returned at the API boundary."""

    VALIDATION = "validation_error"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    DUPLICATE = "duplicate"
    ALREADY_CLOCKED_IN = "already_clocked_in"
    NOT_CLOCKED_IN = "not_clocked_in"
    CATEGORY_CONFLICT = "category_conflict"
    SYNC_REJECTED = "sync_rejected"


class DomainError(Exception):
    """Base exception for business rule violations."""

    code = ErrorCode.VALIDATION

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.field = field


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class AuthorizationError(DomainError):
    """Raised when an actor lacks permission for an action."""

    code = ErrorCode.UNAUTHORIZED


class NotFoundError(DomainError):
    code = ErrorCode.NOT_FOUND


class DuplicateError(DomainError):
    """Raised when a unique business key is already taken."""

    code = ErrorCode.DUPLICATE


class AlreadyClockedInError(DomainError):
    code = ErrorCode.ALREADY_CLOCKED_IN

    def __init__(self, employee_id: str):
        super().__init__(f"Employee {employee_id} is already clocked in")
        self.employee_id = employee_id


class NotClockedInError(DomainError):
    code = ErrorCode.NOT_CLOCKED_IN

    def __init__(self, employee_id: str):
        super().__init__(f"Employee {employee_id} is not currently clocked in")
        self.employee_id = employee_id


class TimeCategoryConflictError(DomainError):
    """Raised before a category write whose hour range overlaps an active category."""

    code = ErrorCode.CATEGORY_CONFLICT


class SyncError(Exception):
    """Infrastructure failure while talking to the authoritative copy."""


class SyncTransientError(SyncError):
    """Store or network unavailable; the operation is queued and retried later."""


class SyncPermanentError(SyncError):
    """The remote rejected the entry itself; retrying cannot help."""
