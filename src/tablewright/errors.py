"""Custom exceptions and failure classification for tablewright.

This module defines the exception hierarchy:
- TablewrightError (base)
- RemoteUnavailableError
- RemoteSchemaError
- SchemaConversionError

It also provides ErrorKind and classify(), which map a raw failure from the
table store onto the recovery strategy the coordinator applies to it.
"""

from __future__ import annotations

from enum import Enum

# Reasons reported by the table store in RemoteSchemaError.reason
REASON_DUPLICATE = "duplicate"
REASON_ACCESS_DENIED = "accessDenied"
REASON_INVALID = "invalid"
REASON_NOT_FOUND = "notFound"

# Message prefixes of an "invalid" rejection caused by the column limit
TOO_MANY_COLUMNS_PREFIXES: tuple[str, ...] = (
    "too many columns",
    "too many total leaf fields",
)


class TablewrightError(Exception):
    """Base exception for all tablewright operations.

    Attributes:
        message: Human-readable error description.
        details: Optional additional context about the error.

    Example:
        >>> try:
        ...     await store.fetch_current_schema(table)
        ... except TablewrightError as e:
        ...     print(f"Table store error: {e}")
    """

    def __init__(self, message: str, *, details: dict[str, str] | None = None) -> None:
        """Initialize TablewrightError.

        Args:
            message: Human-readable error description.
            details: Optional additional context about the error.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation with details if present."""
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class RemoteUnavailableError(TablewrightError):
    """The table store could not be reached.

    Raised when:
    - Network connectivity issues prevent reaching the catalog
    - The catalog answers with a server-side (5xx) failure
    - The request times out

    Always classified as transient.
    """

    def __init__(
        self,
        message: str = "Table store unavailable",
        *,
        table: str | None = None,
        cause: str | None = None,
    ) -> None:
        """Initialize RemoteUnavailableError.

        Args:
            message: Human-readable error description.
            table: The table that was being addressed.
            cause: The underlying cause of the failure.
        """
        details: dict[str, str] = {}
        if table:
            details["table"] = table
        if cause:
            details["cause"] = cause
        super().__init__(message, details=details)
        self.table = table
        self.cause = cause


class RemoteSchemaError(TablewrightError):
    """The table store rejected a schema change or table creation.

    The store reports failures as a loosely typed ``reason`` string plus a
    free-text ``message``; classify() turns the pair into an ErrorKind.

    Example:
        >>> error = RemoteSchemaError("invalid", "Too many columns (10001)")
        >>> classify(error)
        <ErrorKind.TOO_MANY_COLUMNS: 'too_many_columns'>
    """

    def __init__(
        self,
        reason: str,
        message: str,
        *,
        table: str | None = None,
    ) -> None:
        """Initialize RemoteSchemaError.

        Args:
            reason: Reason code reported by the store (e.g. "invalid").
            message: Message reported by the store.
            table: The table the rejected request addressed.
        """
        details = {"reason": reason}
        if table:
            details["table"] = table
        super().__init__(message, details=details)
        self.reason = reason
        self.table = table

    @property
    def lower_case_reason(self) -> str:
        return self.reason.lower()

    @property
    def lower_case_message(self) -> str:
        return self.message.lower()


class SchemaConversionError(TablewrightError):
    """A column type cannot be expressed in the schema model."""

    def __init__(
        self,
        message: str = "Unsupported column type",
        *,
        column: str | None = None,
        type_name: str | None = None,
    ) -> None:
        """Initialize SchemaConversionError.

        Args:
            message: Human-readable error description.
            column: The column with the unsupported type.
            type_name: Name of the unsupported type.
        """
        details: dict[str, str] = {}
        if column:
            details["column"] = column
        if type_name:
            details["type"] = type_name
        super().__init__(message, details=details)
        self.column = column
        self.type_name = type_name


class ErrorKind(str, Enum):
    """Recovery category of a table store failure.

    - DUPLICATE: table already exists (create is a no-op)
    - ACCESS_DENIED: not allowed to create; assume it was pre-provisioned
    - TOO_MANY_COLUMNS: structural column limit hit; trip the circuit
    - CONCURRENT_MODIFICATION: another writer changed the table first; retry
    - TRANSIENT: anything else; retry with backoff
    """

    DUPLICATE = "duplicate"
    ACCESS_DENIED = "access_denied"
    TOO_MANY_COLUMNS = "too_many_columns"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    TRANSIENT = "transient"


def classify(error: BaseException) -> ErrorKind:
    """Classify a raw failure into an ErrorKind.

    Only RemoteSchemaError carries a reason; every other exception, including
    RemoteUnavailableError, is transient. Reasons and messages are compared
    case-insensitively.

    Args:
        error: The exception raised by a table store call.

    Returns:
        The ErrorKind that selects the recovery strategy.

    Example:
        >>> classify(RemoteSchemaError("duplicate", "Already Exists: Table t"))
        <ErrorKind.DUPLICATE: 'duplicate'>
        >>> classify(TimeoutError())
        <ErrorKind.TRANSIENT: 'transient'>
    """
    if not isinstance(error, RemoteSchemaError):
        return ErrorKind.TRANSIENT

    reason = error.lower_case_reason
    if reason == REASON_DUPLICATE.lower():
        return ErrorKind.DUPLICATE
    if reason == REASON_ACCESS_DENIED.lower():
        return ErrorKind.ACCESS_DENIED
    if reason == REASON_INVALID:
        if error.lower_case_message.startswith(TOO_MANY_COLUMNS_PREFIXES):
            return ErrorKind.TOO_MANY_COLUMNS
        return ErrorKind.CONCURRENT_MODIFICATION
    return ErrorKind.TRANSIENT
