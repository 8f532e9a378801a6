"""
Migration Transport

Remote transfer and execution engine for migrating a self-hosted platform
between two servers: recursive SFTP directory synchronization with bounded
concurrency, and SSH command execution with deterministic results.
"""

__version__ = "0.1.0"

from migration_transport.engine import TransferEngine
from migration_transport.models.config import EndpointCredential, EngineConfig
from migration_transport.remote.runner import RemoteCommandRunner, RemoteExecutionResult
from migration_transport.transfer.base import TransferResult, TransferStatus
from migration_transport.transfer.synchronizer import DirectorySynchronizer

__all__ = [
    "TransferEngine",
    "EndpointCredential",
    "EngineConfig",
    "DirectorySynchronizer",
    "RemoteCommandRunner",
    "RemoteExecutionResult",
    "TransferResult",
    "TransferStatus",
]
