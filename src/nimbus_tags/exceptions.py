"""Custom exceptions for Nimbus Tags.

Provides a structured exception hierarchy with error codes and
machine-readable error information. Integrity and write failures are
fatal for a run; scrape failures only cost the current note.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Store errors (1xxx)
    INTEGRITY_VIOLATION = 1001
    WRITE_FAILED = 1002

    # Scrape errors (2xxx)
    SCRAPE_READ_FAILED = 2001
    SETTLE_TIMEOUT = 2002

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001
    CONFIG_MISSING = 6002


class NimbusTagsError(Exception):
    """Base exception for all Nimbus Tags errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class IntegrityViolationError(NimbusTagsError):
    """Raised when a key that must be unique matches more than one row.

    The database was already inconsistent before this lookup, so the run
    aborts instead of guessing which row is the right one.
    """

    def __init__(
        self,
        table: str,
        key: Dict[str, Any],
        match_count: int,
        message: Optional[str] = None
    ):
        super().__init__(
            message or f"{match_count} rows in {table} match a unique key",
            code=ErrorCode.INTEGRITY_VIOLATION,
            details={"table": table, "key": key, "match_count": match_count}
        )
        self.table = table
        self.key = key
        self.match_count = match_count


class WriteFailureError(NimbusTagsError):
    """Raised when an insert did not affect exactly one row."""

    def __init__(
        self,
        table: str,
        operation: str = "insert",
        rowcount: Optional[int] = None,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {"table": table, "operation": operation}
        if rowcount is not None:
            details["rowcount"] = rowcount
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(
            f"Failed to write into {table}",
            code=ErrorCode.WRITE_FAILED,
            details=details
        )
        self.table = table
        self.operation = operation
        self.rowcount = rowcount
        self.original_error = original_error


class ScrapeReadError(NimbusTagsError):
    """Raised when a view of the current note could not be read."""

    def __init__(
        self,
        message: str,
        view: Optional[str] = None,
        title: Optional[str] = None,
        code: ErrorCode = ErrorCode.SCRAPE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {}
        if view:
            details["view"] = view
        if title:
            details["title"] = title[:100]
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.view = view
        self.title = title
        self.original_error = original_error


class SettleTimeoutError(ScrapeReadError):
    """Raised when a UI element never became ready within the timeout."""

    def __init__(self, locator: str, timeout: float, view: Optional[str] = None):
        super().__init__(
            f"Time-out waiting for element to become enabled: {locator}",
            view=view,
            code=ErrorCode.SETTLE_TIMEOUT,
        )
        self.locator = locator
        self.timeout = timeout
        self.details["locator"] = locator
        self.details["timeout"] = timeout


class ConfigurationError(NimbusTagsError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key


class DuplicateTitleWarning(UserWarning):
    """A note title already exists; a second, distinct note row was stored."""


# Reconciliation errors that abort a whole run
FATAL_ERRORS = (IntegrityViolationError, WriteFailureError)
