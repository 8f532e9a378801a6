"""
Core module for the migration transport engine.

This module contains the exception hierarchy and error classification
used throughout the package.
"""

from migration_transport.core.exceptions import (
    MigrationTransportError,
    ConfigurationError,
    ConnectionError,
    EnumerationError,
    TransferError,
    CommandExecutionError,
)

__all__ = [
    "MigrationTransportError",
    "ConfigurationError",
    "ConnectionError",
    "EnumerationError",
    "TransferError",
    "CommandExecutionError",
]
