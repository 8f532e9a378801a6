"""
Persistent remote shell sessions.

A shell session runs one command at a time and reports what happens on the
command's channel to a listener: stdout chunks, stderr chunks, and finally
either the exit status or a channel failure.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional, Protocol, Set

from paramiko import Channel, SSHClient, Transport

from migration_transport.core.exceptions import CommandExecutionError, ConnectionError
from migration_transport.models.config import EndpointCredential, HostKeyPolicy
from migration_transport.transfer.methods.ssh import open_ssh_client

logger = logging.getLogger(__name__)

CHUNK_SIZE = 32768
NO_EXIT_STATUS = -1
UNKNOWN_SIGNAL = "UNKNOWN"


class CommandListener(Protocol):
    """Receives the events of one running command."""

    def data_received(self, data: bytes) -> None:
        ...

    def stderr_received(self, data: bytes) -> None:
        ...

    def channel_closed(self, exit_code: int, signal: Optional[str]) -> None:
        ...

    def channel_error(self, error: Exception) -> None:
        ...


class ShellSession(ABC):
    """Abstract persistent command-execution session to one endpoint."""

    def __init__(self, name: str):
        self.name = name

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether commands can be started."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the session; raises ConnectionError on failure."""

    @abstractmethod
    async def close(self) -> None:
        """Close the session."""

    @abstractmethod
    async def start_command(self, command: str, listener: CommandListener) -> None:
        """
        Start ``command`` and return once it is running.

        Events are delivered to ``listener`` on the event loop afterwards.

        Raises:
            CommandExecutionError: With ``channel_error=True`` if the command
                could not be started at all
        """

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class ParamikoShellSession(ShellSession):
    """
    Shell session over a paramiko SSH connection.

    Each command gets its own channel on the shared transport. A worker
    thread polls the channel and hands events back to the event loop.
    """

    def __init__(
        self,
        credential: EndpointCredential,
        name: str = "shell",
        connect_timeout: Optional[float] = 30.0,
        host_key_policy: HostKeyPolicy = HostKeyPolicy.AUTO_ADD,
        poll_interval: float = 0.05
    ):
        super().__init__(name)
        self.credential = credential
        self.connect_timeout = connect_timeout
        self.host_key_policy = host_key_policy
        self.poll_interval = poll_interval

        self._ssh_client: Optional[SSHClient] = None
        self._pumps: Set[asyncio.Task] = set()

    @property
    def is_connected(self) -> bool:
        if self._ssh_client is None:
            return False
        transport = self._ssh_client.get_transport()
        return transport is not None and transport.is_active()

    async def connect(self) -> None:
        if self.is_connected:
            return

        try:
            self._ssh_client = await asyncio.to_thread(
                open_ssh_client,
                self.credential,
                self.connect_timeout,
                self.host_key_policy
            )
        except Exception as e:
            self._ssh_client = None
            raise ConnectionError(
                f"Failed to connect {self.name} SSH to {self.credential.address}: {e}",
                host=self.credential.host
            ) from e

        logger.info(f"Connected {self.name} SSH ({self.credential.address})")

    async def close(self) -> None:
        if self._ssh_client:
            self._ssh_client.close()
            self._ssh_client = None
            logger.debug(f"{self.name} SSH connection closed")

    def _require_transport(self) -> Transport:
        if self._ssh_client is None:
            raise ConnectionError(
                f"{self.name} SSH session is not connected",
                host=self.credential.host
            )
        transport = self._ssh_client.get_transport()
        if transport is None or not transport.is_active():
            raise ConnectionError(
                f"{self.name} SSH session to {self.credential.address} has dropped",
                host=self.credential.host
            )
        return transport

    async def start_command(self, command: str, listener: CommandListener) -> None:
        try:
            transport = self._require_transport()
            channel = await asyncio.to_thread(self._open_channel, transport, command)
        except Exception as e:
            raise CommandExecutionError(
                f"Failed to start command on {self.name}: {e}",
                command=command,
                channel_error=True
            ) from e

        loop = asyncio.get_running_loop()
        pump = asyncio.create_task(
            asyncio.to_thread(self._pump, channel, listener, loop),
            name=f"{self.name}-command-pump"
        )
        self._pumps.add(pump)
        pump.add_done_callback(self._pumps.discard)

    @staticmethod
    def _open_channel(transport: Transport, command: str) -> Channel:
        channel = transport.open_session()
        try:
            channel.exec_command(command)
        except Exception:
            channel.close()
            raise
        return channel

    def _pump(self, channel: Channel, listener: CommandListener, loop: asyncio.AbstractEventLoop) -> None:
        """Worker-thread loop forwarding channel output until the command exits."""
        try:
            while True:
                received = False

                if channel.recv_ready():
                    data = channel.recv(CHUNK_SIZE)
                    if data:
                        loop.call_soon_threadsafe(listener.data_received, data)
                        received = True

                if channel.recv_stderr_ready():
                    data = channel.recv_stderr(CHUNK_SIZE)
                    if data:
                        loop.call_soon_threadsafe(listener.stderr_received, data)
                        received = True

                if received:
                    continue

                if channel.exit_status_ready() and not channel.recv_ready() and not channel.recv_stderr_ready():
                    break

                time.sleep(self.poll_interval)

            exit_code = channel.recv_exit_status()
            transport = channel.get_transport()
            if exit_code == NO_EXIT_STATUS and (transport is None or not transport.is_active()):
                raise ConnectionError(
                    f"{self.name} SSH session dropped while a command was running",
                    host=self.credential.host
                )
        except Exception as e:
            loop.call_soon_threadsafe(listener.channel_error, e)
            return
        finally:
            channel.close()

        # Paramiko reports -1 when the server sent no exit-status, i.e. the
        # command was terminated by a signal it does not name.
        signal = UNKNOWN_SIGNAL if exit_code == NO_EXIT_STATUS else None
        loop.call_soon_threadsafe(listener.channel_closed, exit_code, signal)
