"""
Base exception classes for the POS QA harness.

Provides a hierarchy of exceptions for the error kinds that can occur while
configuring, acquiring sessions for, running and reporting test scenarios.
"""

from typing import Optional, Dict, Any, List


class POSQAError(Exception):
    """Base exception class for all harness errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
        }


class ConfigurationError(POSQAError):
    """Raised when a configuration property is missing or malformed."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        source: Optional[str] = None,
    ):
        super().__init__(message, "CONFIGURATION_ERROR")
        self.key = key
        self.source = source
        self.context.update(
            {
                "key": key,
                "source": source,
            }
        )


class ValidationError(POSQAError):
    """Raised when validation fails."""

    def __init__(
        self,
        message: str,
        validation_type: Optional[str] = None,
        violations: Optional[list] = None,
    ):
        super().__init__(message, "VALIDATION_FAILED")
        self.validation_type = validation_type
        self.violations = violations or []
        self.context.update(
            {
                "validation_type": validation_type,
                "violations": violations,
            }
        )


class CatalogKeyError(POSQAError, KeyError):
    """Raised when a catalog lookup uses an unknown semantic key."""

    def __init__(self, catalog: str, key: str):
        super().__init__(
            f"Unknown key '{key}' in catalog '{catalog}'", "CATALOG_KEY_UNKNOWN"
        )
        self.catalog = catalog
        self.key = key
        self.context.update({"catalog": catalog, "key": key})

    def __str__(self) -> str:
        return self.message


class SessionAcquisitionError(POSQAError):
    """Raised when an automation handle cannot be created for a context."""

    def __init__(
        self,
        message: str,
        context_id: Optional[str] = None,
        kind: Optional[str] = None,
    ):
        super().__init__(message, "SESSION_ACQUISITION_FAILED")
        self.context_id = context_id
        self.kind = kind
        self.context.update(
            {
                "context_id": context_id,
                "kind": kind,
            }
        )


class SessionNotInitializedError(POSQAError):
    """Raised when an automation call is made for a context that is not bound."""

    def __init__(self, context_id: str, kind: Optional[str] = None):
        what = f"{kind} session" if kind else "session"
        super().__init__(
            f"{what} not initialized for context '{context_id}'",
            "SESSION_NOT_INITIALIZED",
        )
        self.context_id = context_id
        self.kind = kind
        self.context.update({"context_id": context_id, "kind": kind})


class NotReadyError(POSQAError):
    """Raised when a bounded wait expires before its condition holds."""

    def __init__(
        self,
        message: str,
        description: Optional[str] = None,
        timeout: Optional[float] = None,
        elapsed: Optional[float] = None,
    ):
        super().__init__(message, "NOT_READY")
        self.description = description
        self.timeout = timeout
        self.elapsed = elapsed
        self.context.update(
            {
                "description": description,
                "timeout": timeout,
                "elapsed": elapsed,
            }
        )


class SoftAssertionError(POSQAError, AssertionError):
    """Raised at a soft-assertion checkpoint with every accumulated failure."""

    def __init__(self, failures: List[str]):
        lines = "\n".join(f"  {i}. {f}" for i, f in enumerate(failures, 1))
        super().__init__(
            f"{len(failures)} soft assertion(s) failed:\n{lines}",
            "SOFT_ASSERTIONS_FAILED",
        )
        self.failures = list(failures)
        self.context.update({"failures": self.failures})


class XrayError(POSQAError):
    """Raised when an Xray or Jira API call fails."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        status: Optional[int] = None,
    ):
        super().__init__(message, "XRAY_ERROR")
        self.operation = operation
        self.status = status
        self.context.update(
            {
                "operation": operation,
                "status": status,
            }
        )


class FileOperationError(POSQAError):
    """Raised when writing a report or artifact fails."""

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message, "FILE_OPERATION_ERROR")
        self.file_path = file_path
        self.operation = operation
        self.context.update(
            {
                "file_path": file_path,
                "operation": operation,
            }
        )
