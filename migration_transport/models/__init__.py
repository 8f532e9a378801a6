"""
Data models for the migration transport engine.

This module contains Pydantic models for endpoint credentials and
engine configuration.
"""

from migration_transport.models.config import (
    AuthType,
    HostKeyPolicy,
    EndpointCredential,
    TransferSettings,
    LoggingSettings,
    EngineConfig,
)

__all__ = [
    "AuthType",
    "HostKeyPolicy",
    "EndpointCredential",
    "TransferSettings",
    "LoggingSettings",
    "EngineConfig",
]
