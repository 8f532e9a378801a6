"""
Utilities module for the migration transport engine.

This module contains utility functions and logging helpers
used throughout the package.
"""

from migration_transport.utils.helpers import (
    format_bytes,
    format_duration,
    load_config_file,
    remote_join,
    expand_remote_home,
)
from migration_transport.utils.logging import (
    setup_logging,
    get_logger,
    StructuredFormatter,
)

__all__ = [
    # Helper functions
    "format_bytes",
    "format_duration",
    "load_config_file",
    "remote_join",
    "expand_remote_home",
    # Logging utilities
    "setup_logging",
    "get_logger",
    "StructuredFormatter",
]
