# src/ddb_tools/exceptions.py

"""
Shared custom exceptions for ddb-tools.

Centralizing exception definitions in a separate module prevents circular
import errors between other modules that need to raise or catch them.

Exception Hierarchy:
- DdbToolsError (base)
  - RetryableError (transient, safe to try again later)
    - ThrottlingError
    - ProviderTimeoutError
  - NonRetryableError (should not be retried)
    - ValidationError
      - MissingParameterError
    - ConfigurationError
    - TableNotFoundError
    - TableAccessDeniedError
  - SchemaLookupError (also a builtin LookupError)
  - ScanError
  - DeleteError
  - MarshalError
"""

from typing import Any, Dict, Optional


class DdbToolsError(Exception):
    """Base exception for all ddb-tools errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = dict(context) if context else {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "retryable": is_retryable_error(self),
        }


class RetryableError(DdbToolsError):
    """Base class for errors that can be retried."""
    pass


class NonRetryableError(DdbToolsError):
    """Base class for errors that should not be retried."""
    pass


# === Provider Errors ===


class ThrottlingError(RetryableError):
    """Raised when DynamoDB rejects a request for exceeding throughput."""

    def __init__(self, operation: str, table_name: str, **kwargs):
        message = f"DynamoDB {operation} throttled on table '{table_name}'"
        context = dict(kwargs.pop("context", None) or {})
        context.update({"operation": operation, "table_name": table_name})
        super().__init__(message, error_code="DDB_THROTTLING", context=context, **kwargs)


class ProviderTimeoutError(RetryableError):
    """Raised when a DynamoDB request times out or cannot connect."""

    def __init__(self, operation: str, table_name: str, **kwargs):
        message = f"DynamoDB {operation} timed out on table '{table_name}'"
        context = dict(kwargs.pop("context", None) or {})
        context.update({"operation": operation, "table_name": table_name})
        super().__init__(message, error_code="DDB_TIMEOUT", context=context, **kwargs)


class TableNotFoundError(NonRetryableError):
    """Raised when the table does not exist."""

    def __init__(self, table_name: str, **kwargs):
        message = f"Table not found: '{table_name}'"
        context = dict(kwargs.pop("context", None) or {})
        context["table_name"] = table_name
        super().__init__(message, error_code="TABLE_NOT_FOUND", context=context, **kwargs)


class TableAccessDeniedError(NonRetryableError):
    """Raised when the caller is not allowed to act on the table."""

    def __init__(self, table_name: str, **kwargs):
        message = f"Access denied to table: '{table_name}'"
        context = dict(kwargs.pop("context", None) or {})
        context["table_name"] = table_name
        super().__init__(message, error_code="TABLE_ACCESS_DENIED", context=context, **kwargs)


# === Validation Errors ===


class ValidationError(NonRetryableError):
    """Base class for validation errors."""
    pass


class MissingParameterError(ValidationError):
    """Raised when a required parameter was not supplied."""

    def __init__(self, parameter: str, **kwargs):
        message = f'Missing parameter "{parameter}"'
        super().__init__(
            message,
            error_code="MISSING_PARAMETER",
            context={"parameter": parameter},
            **kwargs,
        )


class ConfigurationError(NonRetryableError):
    """Raised when there's an error in the application configuration."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="CONFIGURATION_ERROR", **kwargs)


# === Purge Phase Errors ===


class SchemaLookupError(DdbToolsError, LookupError):
    """Raised when the key schema of a table cannot be resolved."""

    def __init__(self, table_name: str, reason: str, **kwargs):
        message = f"Could not resolve key schema of table '{table_name}': {reason}"
        context = dict(kwargs.pop("context", None) or {})
        context.update({"table_name": table_name, "reason": reason})
        super().__init__(message, error_code="SCHEMA_LOOKUP_FAILED", context=context, **kwargs)


class ScanError(DdbToolsError):
    """Raised when a scan page cannot be fetched or decoded. Aborts the scan."""

    def __init__(self, table_name: str, reason: str, **kwargs):
        message = f"Scan of table '{table_name}' failed: {reason}"
        context = dict(kwargs.pop("context", None) or {})
        context.update({"table_name": table_name, "reason": reason})
        super().__init__(message, error_code="SCAN_FAILED", context=context, **kwargs)


class DeleteError(DdbToolsError):
    """Raised when a BatchWriteItem delete request fails."""

    def __init__(self, table_name: str, reason: str, **kwargs):
        message = f"Batch delete on table '{table_name}' failed: {reason}"
        context = dict(kwargs.pop("context", None) or {})
        context.update({"table_name": table_name, "reason": reason})
        super().__init__(message, error_code="BATCH_DELETE_FAILED", context=context, **kwargs)


class MarshalError(DdbToolsError):
    """Raised when a key tuple cannot be converted to a DynamoDB key map."""

    def __init__(self, reason: str, **kwargs):
        message = f"Could not marshal key: {reason}"
        context = dict(kwargs.pop("context", None) or {})
        context["reason"] = reason
        super().__init__(message, error_code="KEY_MARSHAL_FAILED", context=context, **kwargs)


# === Utility Functions ===


def is_retryable_error(error: BaseException) -> bool:
    """Check if an error is retryable, following the ``__cause__`` chain."""
    while error is not None:
        if isinstance(error, RetryableError):
            return True
        error = error.__cause__
    return False


def get_error_context(error: BaseException) -> Dict[str, Any]:
    """Extract error context for logging."""
    if isinstance(error, DdbToolsError):
        return error.to_dict()
    else:
        return {
            "error_type": error.__class__.__name__,
            "message": str(error),
            "retryable": False,  # Unknown errors default to non-retryable
        }
