"""
Error types for the Datastore SDK.

This module defines all exception types raised by the SDK:
- DatastoreError: Base exception, carries an ErrorCode
- InvalidArgumentError: Malformed keys, values or queries
- PropertyTypeError: Typed getter called on a property of another type
- PropertyNotFoundError: Typed getter called for an absent property
- EntityNotFoundError: Update of an entity that does not exist
- AlreadyExistsError: Insert of an entity that already exists
- AbortedError: Transaction commit lost an optimistic-concurrency race
- FailedPreconditionError: Batch or transaction used past its terminal state

Invariants:
    - All errors inherit from DatastoreError
    - Local violations are raised before any RemoteStore call
    - Only ABORTED (and transport-level codes) are retryable
"""

from __future__ import annotations

from difflib import get_close_matches
from enum import Enum
from typing import Any, Iterable


class ErrorCode(Enum):
    """Error codes shared by local checks and remote commit failures."""

    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    ABORTED = "ABORTED"
    FAILED_PRECONDITION = "FAILED_PRECONDITION"
    UNAVAILABLE = "UNAVAILABLE"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    UNKNOWN = "UNKNOWN"

    @property
    def retryable(self) -> bool:
        """Whether an operation failing with this code may succeed if retried."""
        return self in _RETRYABLE_CODES


_RETRYABLE_CODES = frozenset(
    {ErrorCode.ABORTED, ErrorCode.UNAVAILABLE, ErrorCode.DEADLINE_EXCEEDED}
)


class DatastoreError(Exception):
    """Base exception for all Datastore SDK errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    @property
    def retryable(self) -> bool:
        """Whether the failed operation may be retried as-is."""
        return self.code.retryable


class InvalidArgumentError(DatastoreError):
    """A key, value, entity or query is malformed.

    Raised when:
    - A key has an empty kind or dataset
    - An ancestor path element is incomplete
    - A value payload does not match its variant
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, code=ErrorCode.INVALID_ARGUMENT, details=details)


class PropertyTypeError(InvalidArgumentError):
    """A typed property getter found a value of another type.

    Attributes:
        property_name: The property that was read
        expected: Value type the getter expected
        actual: Value type actually stored
    """

    def __init__(self, property_name: str, expected: str, actual: str) -> None:
        super().__init__(
            f"Property '{property_name}' is {actual}, not {expected}",
            details={
                "property_name": property_name,
                "expected": expected,
                "actual": actual,
            },
        )
        self.property_name = property_name
        self.expected = expected
        self.actual = actual


class PropertyNotFoundError(DatastoreError):
    """A typed property getter was called for an absent property.

    Includes suggestions for similar property names.

    Attributes:
        property_name: The missing property
        suggestions: Similar property names present on the entity
    """

    def __init__(self, property_name: str, known: Iterable[str] = ()) -> None:
        suggestions = get_close_matches(property_name, list(known), n=3)
        msg = f"No such property '{property_name}'"
        if suggestions:
            msg += f". Did you mean: {', '.join(suggestions)}?"

        super().__init__(
            msg,
            code=ErrorCode.NOT_FOUND,
            details={"property_name": property_name, "suggestions": suggestions},
        )
        self.property_name = property_name
        self.suggestions = suggestions


class EntityNotFoundError(DatastoreError):
    """The store rejected a mutation because its target does not exist."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, code=ErrorCode.NOT_FOUND, details=details)


class AlreadyExistsError(DatastoreError):
    """The store rejected an insert because its key is already taken."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, code=ErrorCode.ALREADY_EXISTS, details=details)


class AbortedError(DatastoreError):
    """Transaction commit conflicted with a concurrent write.

    The whole commit was rejected; the caller may retry the transaction.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, code=ErrorCode.ABORTED, details=details)


class FailedPreconditionError(DatastoreError):
    """A batch or transaction was used after it was submitted or finished."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, code=ErrorCode.FAILED_PRECONDITION, details=details)


_ERRORS_BY_CODE: dict[ErrorCode, type[DatastoreError]] = {
    ErrorCode.INVALID_ARGUMENT: InvalidArgumentError,
    ErrorCode.NOT_FOUND: EntityNotFoundError,
    ErrorCode.ALREADY_EXISTS: AlreadyExistsError,
    ErrorCode.ABORTED: AbortedError,
    ErrorCode.FAILED_PRECONDITION: FailedPreconditionError,
}


def error_for_code(
    code: ErrorCode,
    message: str,
    details: dict[str, Any] | None = None,
) -> DatastoreError:
    """Build the exception matching a remote failure code.

    Args:
        code: Failure code reported by the RemoteStore
        message: Failure message reported by the RemoteStore
        details: Additional context

    Returns:
        DatastoreError subclass instance (not raised)
    """
    error_class = _ERRORS_BY_CODE.get(code)
    if error_class is None:
        return DatastoreError(message, code=code, details=details)
    return error_class(message, details=details)
