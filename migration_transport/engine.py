"""
Transfer engine wiring.

This module provides the TransferEngine class that builds one transfer
session and one shell session per endpoint role, a shared work queue, the
directory synchronizer and the command runners from an EngineConfig.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from migration_transport.core.error_handler import ErrorContext, ErrorHandler
from migration_transport.core.exceptions import ConnectionError
from migration_transport.models.config import EngineConfig
from migration_transport.remote.runner import RemoteCommandRunner
from migration_transport.remote.shell import ParamikoShellSession, ShellSession
from migration_transport.transfer.base import TransferSession
from migration_transport.transfer.methods.ssh import SftpSession
from migration_transport.transfer.queue import BoundedWorkQueue
from migration_transport.transfer.synchronizer import DirectorySynchronizer

logger = logging.getLogger(__name__)

SOURCE = "source"
TARGET = "target"


class TransferEngine:
    """
    Owns every session of a migration run and the services built on them.

    Sessions are connected independently. A session that fails to connect
    is logged and left unconnected, so the engine can run degraded; any
    call that needs it raises ConnectionError.
    """

    def __init__(
        self,
        source: TransferSession,
        target: TransferSession,
        source_shell: ShellSession,
        target_shell: ShellSession,
        queue: Optional[BoundedWorkQueue] = None,
        download_priority: int = 2,
        error_handler: Optional[ErrorHandler] = None
    ):
        self.error_handler = error_handler or ErrorHandler(logger)
        self.queue = queue or BoundedWorkQueue()

        self.sessions: Dict[str, TransferSession] = {SOURCE: source, TARGET: target}
        self.shells: Dict[str, ShellSession] = {SOURCE: source_shell, TARGET: target_shell}

        self.synchronizer = DirectorySynchronizer(
            source,
            target,
            self.queue,
            download_priority=download_priority,
            error_handler=self.error_handler,
        )
        self.runners: Dict[str, RemoteCommandRunner] = {
            role: RemoteCommandRunner(shell) for role, shell in self.shells.items()
        }

        self.connect_errors: List[ConnectionError] = []

    @classmethod
    def from_config(cls, config: EngineConfig) -> "TransferEngine":
        """Build an engine with paramiko sessions for both endpoints."""
        settings = config.transfer
        session_options = {
            'connect_timeout': settings.connect_timeout,
            'host_key_policy': settings.host_key_policy,
        }

        return cls(
            source=SftpSession(config.source, name=SOURCE, **session_options),
            target=SftpSession(config.target, name=TARGET, **session_options),
            source_shell=ParamikoShellSession(config.source, name=SOURCE, **session_options),
            target_shell=ParamikoShellSession(config.target, name=TARGET, **session_options),
            queue=BoundedWorkQueue(settings.concurrency),
            download_priority=settings.download_priority,
        )

    @property
    def source_runner(self) -> RemoteCommandRunner:
        return self.runners[SOURCE]

    @property
    def target_runner(self) -> RemoteCommandRunner:
        return self.runners[TARGET]

    async def connect(self) -> List[ConnectionError]:
        """
        Connect every session concurrently.

        Returns:
            The connection errors, one per session that failed; empty when
            everything is connected
        """
        endpoints = [
            *self.sessions.values(),
            *self.shells.values(),
        ]
        outcomes = await asyncio.gather(
            *(endpoint.connect() for endpoint in endpoints),
            return_exceptions=True
        )

        self.connect_errors = []
        for endpoint, outcome in zip(endpoints, outcomes):
            if isinstance(outcome, ConnectionError):
                self.connect_errors.append(outcome)
                self.error_handler.handle_error(outcome, ErrorContext(operation=f"connect {endpoint.name}"))
            elif isinstance(outcome, BaseException):
                raise outcome

        if not self.connect_errors:
            logger.info("All sessions connected")
        return self.connect_errors

    def require_connected(self) -> None:
        """Raise the first connection error, if any session failed to connect."""
        if self.connect_errors:
            raise self.connect_errors[0]

    async def close(self) -> None:
        """Close every session."""
        for endpoint in [*self.sessions.values(), *self.shells.values()]:
            await endpoint.close()
        logger.debug("All sessions closed")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
