"""
Typed service results and error taxonomy.

Business-rule outcomes travel as ``ServiceResult`` values so callers can tell a
rejected request apart from an infrastructure fault. Only the store layer raises
(``StoreError``), and the HTTP layer turns failed results into ``ServiceFailure``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorCategory(str, Enum):
    """Broad class of a service error, used for HTTP status mapping."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    STORE = "store"


class ErrorCode(str, Enum):
    """Specific rule that a request violated."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    ORGANIZATION_MISMATCH = "ORGANIZATION_MISMATCH"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    ALREADY_SUBMITTED = "ALREADY_SUBMITTED"
    EMPTY_EVALUATION = "EMPTY_EVALUATION"
    CANNOT_DELETE_SUBMITTED = "CANNOT_DELETE_SUBMITTED"
    STORE_ERROR = "STORE_ERROR"

    @property
    def category(self) -> ErrorCategory:
        if self is ErrorCode.VALIDATION_ERROR:
            return ErrorCategory.VALIDATION
        if self is ErrorCode.NOT_FOUND:
            return ErrorCategory.NOT_FOUND
        if self is ErrorCode.STORE_ERROR:
            return ErrorCategory.STORE
        return ErrorCategory.CONFLICT


@dataclass(frozen=True)
class ServiceError:
    """A business-rule or infrastructure failure reported by a service."""

    code: ErrorCode
    message: str
    field: Optional[str] = None

    @property
    def category(self) -> ErrorCategory:
        return self.code.category

    @classmethod
    def validation(cls, message: str, field: Optional[str] = None) -> "ServiceError":
        return cls(ErrorCode.VALIDATION_ERROR, message, field)

    @classmethod
    def not_found(cls, message: str) -> "ServiceError":
        return cls(ErrorCode.NOT_FOUND, message)

    @classmethod
    def store_failure(cls) -> "ServiceError":
        # Storage internals are logged, never returned
        return cls(ErrorCode.STORE_ERROR, "The evaluation store is temporarily unavailable")


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    """Either a value or a ``ServiceError``."""

    value: Optional[T] = None
    error: Optional[ServiceError] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def ok(cls, value: T = None) -> "ServiceResult[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, error: ServiceError) -> "ServiceResult[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value, raising ``ServiceFailure`` for a failed result."""
        if self.error is not None:
            raise ServiceFailure(self.error)
        return self.value


class ServiceFailure(Exception):
    """Raised at the HTTP boundary when a service result carries an error."""

    def __init__(self, error: ServiceError):
        super().__init__(error.message)
        self.error = error


class StoreError(Exception):
    """Underlying persistence failure."""
    pass


class UniqueViolation(StoreError):
    """Raised when a write collides with a storage-level unique constraint."""
    pass
