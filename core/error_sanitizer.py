"""
Error message sanitizer for security.

Removes credentials (passwords in JDBC/MySQL URLs, password options) from error
messages before they are logged, embedded in exceptions or reported by the
status endpoint.
"""

import re
from typing import Optional


class ErrorSanitizer:
    """Sanitize error messages to remove sensitive information."""

    # Patterns to detect and sanitize
    SENSITIVE_PATTERNS = [
        # Connection strings with passwords
        (r"jdbc:mysql://[^:/@]+:([^@]+)@", r"jdbc:mysql://***:***@"),
        (r"mysql://[^:/@]+:([^@]+)@", r"mysql://***:***@"),
        # Password in various formats, including JDBC query options
        (r"password['\"]?\s*[:=]\s*['\"]?([^'\";\s,}&]+)", r"password=***"),
        (r"pwd['\"]?\s*[:=]\s*['\"]?([^'\";\s,}&]+)", r"pwd=***"),
        (r"passwd['\"]?\s*[:=]\s*['\"]?([^'\";\s,}&]+)", r"passwd=***"),
    ]

    # Exception types that have empty string representation
    EMPTY_ERROR_TYPES = {
        TimeoutError: "Operation timed out - MySQL server may be slow or unreachable",
    }

    # Error text to user-friendly message mapping
    ERROR_MAPPINGS = {
        # Connection errors
        "can't connect to mysql server": "Unable to Connect to MySQL",
        "connection refused": "Database Connection Refused",
        "connection timed out": "Database Connection Timeout",
        "connection reset": "Database Connection Reset",
        "lost connection to mysql server": "Database Connection Lost",
        # Authentication errors
        "access denied": "Database Access Denied",
        # Binlog errors
        "could not find first log file name": "Binlog File Not Found",
        "can't find journalname": "Binlog File Not Found",
        "binary log is not open": "Binary Logging Disabled",
    }

    @classmethod
    def sanitize_text(cls, text: str) -> str:
        """Mask credentials inside an arbitrary string (URL, message)."""
        sanitized = text
        for pattern, replacement in cls.SENSITIVE_PATTERNS:
            sanitized = re.sub(
                pattern, replacement, sanitized, flags=re.IGNORECASE | re.DOTALL
            )
        return sanitized

    @classmethod
    def sanitize_error_message(
        cls, error: BaseException, context: Optional[str] = None
    ) -> str:
        """
        Sanitize error message for safe display.

        Args:
            error: The exception object
            context: Optional context (e.g., "Split_0")

        Returns:
            Sanitized, user-friendly error message
        """
        for error_type, friendly_msg in cls.EMPTY_ERROR_TYPES.items():
            if isinstance(error, error_type):
                if context:
                    return f"{context}: {friendly_msg}"
                return friendly_msg

        original_str = str(error).strip()

        if not original_str:
            if context:
                return f"{context}: Unknown error occurred"
            return "Unknown error occurred"

        error_msg = original_str.lower()

        for pattern, friendly_msg in cls.ERROR_MAPPINGS.items():
            if pattern in error_msg:
                if context:
                    return f"{context}: {friendly_msg}"
                return friendly_msg

        sanitized = cls.sanitize_text(original_str)

        # Truncate very long messages
        if len(sanitized) > 500:
            sanitized = sanitized[:497] + "..."

        if context:
            return f"{context}: {sanitized}"

        return sanitized

    @classmethod
    def sanitize_for_logs(cls, error: BaseException) -> str:
        """
        Sanitize error message for logging.

        Logs keep the full error structure but never credentials.
        """
        return cls.sanitize_text(str(error))


# Convenience functions
def sanitize_error(error: BaseException, context: Optional[str] = None) -> str:
    """Sanitize error message for safe display."""
    return ErrorSanitizer.sanitize_error_message(error, context)


def sanitize_for_log(error: BaseException) -> str:
    """Sanitize error message for logging."""
    return ErrorSanitizer.sanitize_for_logs(error)


def sanitize_url(url: Optional[str]) -> str:
    """Mask the credentials of a connection URL."""
    if not url:
        return ""
    return ErrorSanitizer.sanitize_text(url)
