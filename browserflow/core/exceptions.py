"""
Base exception classes for BrowserFlow.

Provides a hierarchy of exceptions for the error types that can occur while
managing runs, baselines and failure bundles.
"""

from typing import Optional, Dict, Any


class BrowserflowError(Exception):
    """Base exception class for all BrowserFlow errors."""

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


class FileOperationError(BrowserflowError):
    """Raised when file system operations fail."""

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message, "FILE_OPERATION_FAILED")
        self.file_path = file_path
        self.operation = operation
        self.context.update(
            {
                "file_path": file_path,
                "operation": operation,
            }
        )


class ValidationError(BrowserflowError):
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


class BundleNotFoundError(BrowserflowError):
    """Raised when an explicitly requested failure bundle does not exist."""

    def __init__(self, message: str, bundle_path: Optional[str] = None):
        super().__init__(message, "BUNDLE_NOT_FOUND")
        self.bundle_path = bundle_path
        self.context.update({"bundle_path": bundle_path})
