"""
Custom exceptions for the binlog reader.

Every error raised by the reader derives from BinlogReaderException so callers
can separate reader failures from unexpected bugs.
"""

from typing import Any, Optional


class BinlogReaderException(Exception):
    """
    Base exception for all binlog reader errors.

    All custom exceptions should inherit from this class.
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            details: Additional error context
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for status reporting."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(BinlogReaderException):
    """
    Fatal configuration error.

    Raised when the reader can never stream with the given settings: a missing
    journal file on resume, an account without replication privilege, a
    malformed JDBC URL or invalid options. Never retried.
    """


class TransientConnectionError(ConfigurationError):
    """
    Connection could not be established within the retry budget.

    Only the preflight authority connection is retried; once the attempts are
    exhausted the failure is treated like any other configuration error.
    """


class TablePermissionError(BinlogReaderException):
    """
    The account cannot read one or more of the probed tables.

    Aggregates every failed table into a single error.
    """

    def __init__(
        self,
        message: str,
        failed_tables: list[str],
        details: Optional[dict[str, Any]] = None,
    ):
        details = dict(details or {})
        details["failed_tables"] = list(failed_tables)
        self.failed_tables = list(failed_tables)
        super().__init__(message, details)


class StreamFault(BinlogReaderException):
    """
    Failure reported by the binlog client while streaming.

    Propagated to the consumer unchanged; the reader does not reconnect.
    """
