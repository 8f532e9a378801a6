"""
Custom exceptions for the migration transport engine.

This module defines the exception classes raised by transfer sessions,
the directory synchronizer and the remote command runner.
"""

from typing import Any, Dict, Optional


class MigrationTransportError(Exception):
    """Base exception class for migration transport errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}


class ConfigurationError(MigrationTransportError):
    """Raised when there's an error in configuration."""
    pass


class ConnectionError(MigrationTransportError):
    """Raised when a remote session cannot be established or has dropped."""

    def __init__(self, message: str, host: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.host = host


class EnumerationError(MigrationTransportError):
    """Raised when a directory cannot be listed or prepared."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.path = path


class TransferError(MigrationTransportError):
    """Raised when a single file transfer fails."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        destination: Optional[str] = None,
        direction: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.source = source
        self.destination = destination
        self.direction = direction


class CommandExecutionError(MigrationTransportError):
    """Raised when a remote command exits nonzero or its channel fails."""

    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        exit_code: Optional[int] = None,
        signal: Optional[str] = None,
        stdout: str = "",
        stderr: str = "",
        channel_error: bool = False,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.command = command
        self.exit_code = exit_code
        self.signal = signal
        self.stdout = stdout
        self.stderr = stderr
        self.channel_error = channel_error
