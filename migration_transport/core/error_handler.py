"""
Error classification for the migration transport engine.

Maps exceptions raised by sessions, transfers and remote commands to a
category and severity, and attaches remediation hints for operators.
No retry logic lives here: every failure is terminal for its unit of work.
"""

import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from .exceptions import (
    ConfigurationError,
    ConnectionError,
    EnumerationError,
    TransferError,
    CommandExecutionError,
)


class ErrorCategory(str, Enum):
    """Categories of errors for better handling and reporting."""
    CONFIGURATION = "configuration"
    CONNECTIVITY = "connectivity"
    ENUMERATION = "enumeration"
    TRANSFER = "transfer"
    COMMAND = "command"
    PERMISSION = "permission"
    RESOURCE = "resource"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Context information for an error occurrence."""
    timestamp: datetime = field(default_factory=datetime.now)
    operation: Optional[str] = None
    path: Optional[str] = None
    additional_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ErrorInfo:
    """Comprehensive error information."""
    error: Exception
    category: ErrorCategory
    severity: ErrorSeverity
    context: ErrorContext
    remediation_steps: List[str]
    traceback_str: str
    is_fatal: bool = False


class ErrorHandler:
    """
    Error handler that categorizes failures and logs them once.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._error_mappings = self._build_error_mappings()
        self._remediation_guides = self._build_remediation_guides()

    def _build_error_mappings(self) -> Dict[Type[Exception], Dict[str, Any]]:
        """Build mapping of exception types to error categories and severities."""
        # Order matters: subclasses are looked up before the builtins they extend.
        return {
            ConfigurationError: {
                "category": ErrorCategory.CONFIGURATION,
                "severity": ErrorSeverity.HIGH,
                "fatal": True,
            },
            ConnectionError: {
                "category": ErrorCategory.CONNECTIVITY,
                "severity": ErrorSeverity.CRITICAL,
                "fatal": True,
            },
            EnumerationError: {
                "category": ErrorCategory.ENUMERATION,
                "severity": ErrorSeverity.MEDIUM,
                "fatal": False,
            },
            TransferError: {
                "category": ErrorCategory.TRANSFER,
                "severity": ErrorSeverity.MEDIUM,
                "fatal": False,
            },
            CommandExecutionError: {
                "category": ErrorCategory.COMMAND,
                "severity": ErrorSeverity.HIGH,
                "fatal": False,
            },
            # Standard Python exceptions
            PermissionError: {
                "category": ErrorCategory.PERMISSION,
                "severity": ErrorSeverity.HIGH,
                "fatal": False,
            },
            FileNotFoundError: {
                "category": ErrorCategory.ENUMERATION,
                "severity": ErrorSeverity.MEDIUM,
                "fatal": False,
            },
            TimeoutError: {
                "category": ErrorCategory.CONNECTIVITY,
                "severity": ErrorSeverity.HIGH,
                "fatal": False,
            },
            OSError: {
                "category": ErrorCategory.RESOURCE,
                "severity": ErrorSeverity.MEDIUM,
                "fatal": False,
            },
        }

    def _build_remediation_guides(self) -> Dict[ErrorCategory, List[str]]:
        """Build remediation guides for each error category."""
        return {
            ErrorCategory.CONFIGURATION: [
                "Check configuration file syntax and required fields",
                "Ensure each endpoint has a password or private key",
            ],
            ErrorCategory.CONNECTIVITY: [
                "Check network connectivity to the remote host",
                "Verify the SSH port is reachable and the service is running",
                "Confirm username, password or private key are correct",
                "Restart the tool: sessions are never re-established automatically",
            ],
            ErrorCategory.ENUMERATION: [
                "Verify the directory exists on the listed side",
                "Check read and execute permissions on the directory",
            ],
            ErrorCategory.TRANSFER: [
                "Check available disk space on source and destination",
                "Ensure proper file permissions",
                "Re-run the transfer for the failed files",
            ],
            ErrorCategory.COMMAND: [
                "Inspect the command's stderr output",
                "Run the command manually on the remote host",
            ],
            ErrorCategory.PERMISSION: [
                "Verify the remote user has required permissions",
                "Check file and directory access rights",
            ],
            ErrorCategory.RESOURCE: [
                "Check available disk space",
                "Check local file and directory access rights",
            ],
            ErrorCategory.UNKNOWN: [
                "Review error logs for additional context",
            ],
        }

    def categorize_error(self, error: Exception, context: Optional[ErrorContext] = None) -> ErrorInfo:
        """
        Categorize an error and create comprehensive error information.

        Args:
            error: The exception that occurred
            context: Optional context information

        Returns:
            ErrorInfo object with categorized error details
        """
        mapping = self._error_mappings.get(type(error))

        if not mapping:
            for exc_type, exc_mapping in self._error_mappings.items():
                if isinstance(error, exc_type):
                    mapping = exc_mapping
                    break

        if not mapping:
            mapping = {
                "category": ErrorCategory.UNKNOWN,
                "severity": ErrorSeverity.MEDIUM,
                "fatal": False,
            }

        category = mapping["category"]

        return ErrorInfo(
            error=error,
            category=category,
            severity=mapping["severity"],
            context=context or ErrorContext(),
            remediation_steps=self._remediation_guides.get(category, []),
            traceback_str="".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ),
            is_fatal=mapping["fatal"],
        )

    def handle_error(self, error: Exception, context: Optional[ErrorContext] = None) -> ErrorInfo:
        """
        Categorize an error and log it with the matching level.

        Args:
            error: The exception that occurred
            context: Optional context information

        Returns:
            ErrorInfo object with error details
        """
        error_info = self.categorize_error(error, context)
        self._log_error(error_info)
        return error_info

    def _log_error(self, error_info: ErrorInfo) -> None:
        """Log error information with appropriate level."""
        log_data = {
            "error_type": type(error_info.error).__name__,
            "error_code": getattr(error_info.error, "code", None),
            "category": error_info.category.value,
            "severity": error_info.severity.value,
            "operation": error_info.context.operation,
            "path": error_info.context.path,
            "is_fatal": error_info.is_fatal,
        }

        operation = error_info.context.operation or "operation"
        message = f"{operation} failed: {error_info.error}"

        if error_info.severity == ErrorSeverity.CRITICAL:
            self.logger.critical(message, extra=log_data)
        elif error_info.severity == ErrorSeverity.HIGH:
            self.logger.error(message, extra=log_data)
        elif error_info.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(message, extra=log_data)
        else:
            self.logger.info(message, extra=log_data)

        if error_info.severity in [ErrorSeverity.HIGH, ErrorSeverity.CRITICAL]:
            self.logger.debug("Error traceback:\n%s", error_info.traceback_str)

