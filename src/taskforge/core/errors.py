"""
Structured error types for the taskforge data-access layer.

Every failure that crosses the pool facade is a ``TaskforgeError`` carrying a
category, a retryable flag, structured context and the chained driver
exception.  Route handlers can therefore tell "your input was invalid" apart
from "the store is down" without string-matching driver messages.

Manifesto:
    - **Typed Error Hierarchy:** One class per failure kind the caller can act on
    - **Explicit Retry Semantics:** The flag is informational; this layer never retries
    - **Rich Context:** Errors carry backend, statement kind and store codes
    - **Error Chaining:** The original driver exception is always preserved

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       TaskforgeError                             │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  NotInitializedError   ConfigError        DatabaseError          │
        │  (INTERNAL)            (CONFIG)           (DATABASE)             │
        │                                               │                  │
        │                        MalformedQueryError    (VALIDATION)       │
        │                        ConstraintViolationError (VALIDATION)     │
        │                        QueryError             (DATABASE)         │
        │                        BackendUnavailableError (retryable)       │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = ConstraintViolationError("duplicate email", code="23505")
    >>> error.retryable
    False
    >>> error.to_dict()["code"]
    '23505'

Guardrails:
    ❌ DON'T: Let raw ``sqlite3.Error`` / ``asyncpg`` exceptions escape the layer
    ✅ DO: Map them at the adapter boundary and pass ``cause=``

    ❌ DON'T: Retry ``ConstraintViolationError`` automatically
    ✅ DO: Surface it to the caller, it is a caller-data error

Tags:
    error-handling, exception-hierarchy, database, taskforge

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    DATABASE = "DATABASE"         # Connection pool, query timeout, store errors
    VALIDATION = "VALIDATION"     # Malformed queries, constraint violations
    CONFIG = "CONFIG"             # Missing config, invalid settings
    INTERNAL = "INTERNAL"         # Lifecycle misuse, unexpected state
    UNKNOWN = "UNKNOWN"           # Uncategorized errors


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only fields that are set end up in ``to_dict()``; anything without a
    dedicated field goes into ``metadata``.
    """

    backend: str | None = None
    statement: str | None = None
    table: str | None = None
    sql: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["backend", "statement", "table", "sql"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class TaskforgeError(Exception):
    """
    Base exception for all taskforge data-access errors.

    Subclasses set ``default_category`` and ``default_retryable`` so callers
    rarely pass them explicitly.

    Examples:
        >>> error = TaskforgeError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> try:
        ...     raise OSError("connection refused")
        ... except OSError as e:
        ...     error = BackendUnavailableError("store is down", cause=e)
        >>> error.retryable
        True
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> TaskforgeError:
        """
        Add context to this error (fluent API).

        Usage:
            raise MalformedQueryError("bad marker").with_context(
                statement="UPDATE", table="tasks"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# LIFECYCLE / CONFIGURATION ERRORS
# =============================================================================


class NotInitializedError(TaskforgeError):
    """The pool facade was used before ``initialize()`` or after ``shutdown()``."""

    default_category = ErrorCategory.INTERNAL
    default_retryable = False

    def __init__(self, message: str = "Database pool is not initialized", **kwargs: Any):
        super().__init__(message, **kwargs)


class ConfigError(TaskforgeError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(TaskforgeError):
    """Database query or transaction error."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False

    def __init__(self, message: str, *, code: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.code:
            result["code"] = self.code
        return result


class MalformedQueryError(DatabaseError):
    """
    The query text cannot be translated, classified or emulated.

    Raised for marker/parameter mismatches, RETURNING clauses the emulator
    cannot match, and syntax errors reported by the store.
    """

    default_category = ErrorCategory.VALIDATION


class ConstraintViolationError(DatabaseError):
    """Unique / foreign-key / check violation reported by the store.

    ``code`` holds the store-reported code (SQLSTATE for PostgreSQL,
    extended result code name for SQLite).
    """

    default_category = ErrorCategory.VALIDATION


class QueryError(DatabaseError):
    """Store-reported statement failure that is neither malformed nor a constraint."""


class BackendUnavailableError(DatabaseError):
    """Connection, pool-acquisition or statement timeout failure.

    Flagged retryable so an outer policy can decide; the layer itself fails fast.
    """

    default_retryable = True


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, TaskforgeError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, TaskforgeError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.DATABASE
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "TaskforgeError",
    "NotInitializedError",
    "ConfigError",
    "DatabaseError",
    "MalformedQueryError",
    "ConstraintViolationError",
    "QueryError",
    "BackendUnavailableError",
    "is_retryable",
    "categorize_error",
]
