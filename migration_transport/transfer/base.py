"""
Base classes for file transfer operations.

This module defines the abstract secure transfer session and the data
structures exchanged between sessions, the work queue and the
directory synchronizer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple
import logging


class TransferStatus(str, Enum):
    """Final status of a top-level transfer operation."""
    COMPLETED = "completed"
    FAILED = "failed"


class TransferDirection(str, Enum):
    """Which way a file moves relative to the local machine."""
    DOWNLOAD = "download"
    UPLOAD = "upload"


class EntryType(str, Enum):
    """Kind of directory entry; anything that is not a directory is a file."""
    FILE = "file"
    DIRECTORY = "dir"


@dataclass(frozen=True)
class RemoteEntry:
    """One entry of a remote directory listing."""
    name: str
    type: EntryType

    @property
    def is_directory(self) -> bool:
        return self.type == EntryType.DIRECTORY


@dataclass(frozen=True)
class RemoteStat:
    """Subset of remote file attributes the engine relies on."""
    is_directory: bool
    size: Optional[int] = None


@dataclass(frozen=True)
class TransferTask:
    """A single leaf transfer produced while walking a tree."""
    source: str
    destination: str
    direction: TransferDirection
    priority: int = 0

    def describe(self) -> str:
        return f"{self.direction.value} {self.source} -> {self.destination}"


@dataclass(frozen=True)
class TransferResult:
    """
    Outcome of one top-level transfer operation.

    ``status`` is the tag: COMPLETED when every enumeration and leaf transfer
    succeeded, FAILED otherwise, with ``error`` holding the first failure seen.
    """
    status: TransferStatus
    source: str
    destination: str
    direction: TransferDirection
    transferred_files: Tuple[str, ...] = ()
    failed_files: Tuple[str, ...] = ()
    visited_directories: Tuple[str, ...] = ()
    error: Optional[Exception] = None
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime = field(default_factory=datetime.now)

    @property
    def success(self) -> bool:
        return self.status == TransferStatus.COMPLETED

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


class TransferSession(ABC):
    """
    Abstract long-lived connection to one remote endpoint.

    A session is owned by whoever created it. It never reconnects: once
    ``connect`` failed or the underlying transport dropped, every primitive
    raises :class:`~migration_transport.core.exceptions.ConnectionError`.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the session can currently serve requests."""

    @abstractmethod
    async def connect(self) -> None:
        """Establish the session; raises ConnectionError on failure."""

    @abstractmethod
    async def close(self) -> None:
        """Release the connection."""

    @abstractmethod
    async def list(self, remote_dir: str) -> List[RemoteEntry]:
        """List the immediate entries of ``remote_dir`` in server order."""

    @abstractmethod
    async def get(self, remote_path: str, local_path: str) -> None:
        """Download ``remote_path`` to ``local_path``."""

    @abstractmethod
    async def put(self, local_path: str, remote_path: str) -> None:
        """Upload ``local_path`` to ``remote_path``."""

    @abstractmethod
    async def exists(self, remote_path: str) -> bool:
        """Whether ``remote_path`` exists."""

    @abstractmethod
    async def mkdir(self, remote_path: str, recursive: bool = False) -> None:
        """Create ``remote_path``; with ``recursive`` missing parents are created too."""

    @abstractmethod
    async def stat(self, remote_path: str) -> RemoteStat:
        """Return attributes of ``remote_path``."""

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
