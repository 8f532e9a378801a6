"""
File transfer module for the migration transport engine.

This module provides the secure transfer session abstraction, the bounded
work queue and the recursive directory synchronizer built on top of them.
"""

from .base import (
    EntryType,
    RemoteEntry,
    RemoteStat,
    TransferDirection,
    TransferResult,
    TransferSession,
    TransferStatus,
    TransferTask,
)
from .local import LocalFilesystem
from .queue import BoundedWorkQueue, QueueState
from .synchronizer import DirectorySynchronizer

__all__ = [
    'EntryType',
    'RemoteEntry',
    'RemoteStat',
    'TransferDirection',
    'TransferResult',
    'TransferSession',
    'TransferStatus',
    'TransferTask',
    'LocalFilesystem',
    'BoundedWorkQueue',
    'QueueState',
    'DirectorySynchronizer',
]
