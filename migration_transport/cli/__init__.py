"""
CLI module for the migration transport engine.

This module provides command-line interface functionality
using Click and Rich.
"""

from migration_transport.cli.main import main

__all__ = ["main"]
