"""
Pytest configuration and fixtures for the migration transport tests.

This module provides in-memory transfer and shell sessions so the
synchronizer, the runner and the CLI can be exercised without a server.
"""

import asyncio
import logging
import posixpath
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

import pytest

from migration_transport.core.exceptions import CommandExecutionError, ConnectionError
from migration_transport.models.config import EndpointCredential
from migration_transport.remote.shell import CommandListener, ShellSession
from migration_transport.transfer.base import EntryType, RemoteEntry, RemoteStat, TransferSession
from migration_transport.utils.logging import ROOT_LOGGER_NAME


class FakeTransferSession(TransferSession):
    """
    Transfer session backed by an in-memory tree.

    Directories keep their children in insertion order, which stands in for
    the server's listing order.
    """

    def __init__(
        self,
        name: str = "fake",
        files: Optional[Dict[str, bytes]] = None,
        get_delay: Union[float, Callable[[str], float]] = 0.0,
    ):
        super().__init__(name)
        self.files: Dict[str, bytes] = {}
        self.children: Dict[str, List[str]] = {"/": []}
        self.get_delay = get_delay
        self.connected = True

        self.fail_list: Set[str] = set()
        self.fail_get: Set[str] = set()
        self.fail_put: Set[str] = set()
        self.fail_mkdir: Set[str] = set()

        self.calls: List[Tuple[str, str]] = []
        self.put_order: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

        for path, data in (files or {}).items():
            self.add_file(path, data)

    # Tree helpers ---------------------------------------------------------

    def add_dir(self, path: str) -> None:
        path = posixpath.normpath(path)
        if path in self.children:
            return
        parent = posixpath.dirname(path)
        self.add_dir(parent)
        self.children[parent].append(posixpath.basename(path))
        self.children[path] = []

    def add_file(self, path: str, data: bytes = b"") -> None:
        path = posixpath.normpath(path)
        parent = posixpath.dirname(path)
        self.add_dir(parent)
        if path not in self.files:
            self.children[parent].append(posixpath.basename(path))
        self.files[path] = data

    def _check(self) -> None:
        if not self.connected:
            raise ConnectionError(f"{self.name} session is not connected", host="fake")

    # TransferSession ------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    async def list(self, remote_dir: str) -> List[RemoteEntry]:
        self._check()
        remote_dir = posixpath.normpath(remote_dir)
        self.calls.append(("list", remote_dir))
        await asyncio.sleep(0)
        if remote_dir in self.fail_list:
            raise PermissionError(f"Permission denied: {remote_dir}")
        if remote_dir not in self.children:
            raise FileNotFoundError(f"No such file: {remote_dir}")
        return [
            RemoteEntry(
                name=name,
                type=EntryType.DIRECTORY if posixpath.join(remote_dir, name) in self.children else EntryType.FILE,
            )
            for name in self.children[remote_dir]
        ]

    async def get(self, remote_path: str, local_path: str) -> None:
        self._check()
        self.calls.append(("get", remote_path))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.get_delay(remote_path) if callable(self.get_delay) else self.get_delay
            await asyncio.sleep(delay)
            if remote_path in self.fail_get:
                raise OSError(f"Failure reading {remote_path}")
            with open(local_path, "wb") as f:
                f.write(self.files[remote_path])
        finally:
            self.in_flight -= 1

    async def put(self, local_path: str, remote_path: str) -> None:
        self._check()
        self.calls.append(("put", remote_path))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if remote_path in self.fail_put:
                raise OSError(f"Failure writing {remote_path}")
            if posixpath.dirname(remote_path) not in self.children:
                raise FileNotFoundError(f"No such directory: {posixpath.dirname(remote_path)}")
            with open(local_path, "rb") as f:
                self.add_file(remote_path, f.read())
            self.put_order.append(remote_path)
        finally:
            self.in_flight -= 1

    async def exists(self, remote_path: str) -> bool:
        self._check()
        remote_path = posixpath.normpath(remote_path)
        self.calls.append(("exists", remote_path))
        return remote_path in self.children or remote_path in self.files

    async def mkdir(self, remote_path: str, recursive: bool = False) -> None:
        self._check()
        remote_path = posixpath.normpath(remote_path)
        self.calls.append(("mkdir", remote_path))
        if remote_path in self.fail_mkdir:
            raise PermissionError(f"Permission denied: {remote_path}")
        if remote_path in self.files:
            raise NotADirectoryError(remote_path)
        if not recursive and posixpath.dirname(remote_path) not in self.children:
            raise FileNotFoundError(f"No such directory: {posixpath.dirname(remote_path)}")
        self.add_dir(remote_path)

    async def stat(self, remote_path: str) -> RemoteStat:
        self._check()
        remote_path = posixpath.normpath(remote_path)
        if remote_path in self.children:
            return RemoteStat(is_directory=True)
        if remote_path in self.files:
            return RemoteStat(is_directory=False, size=len(self.files[remote_path]))
        raise FileNotFoundError(f"No such file: {remote_path}")


class FakeShellSession(ShellSession):
    """
    Shell session replaying scripted channel events.

    ``script`` maps a command to the events delivered after it starts:
    ``("stdout", bytes)``, ``("stderr", bytes)``, ``("close", code, signal)``
    or ``("error", exception)``. Events are delivered on later loop
    iterations, like a real channel.
    """

    def __init__(self, name: str = "fake-shell", script: Optional[Dict[str, Sequence[tuple]]] = None):
        super().__init__(name)
        self.script: Dict[str, Sequence[tuple]] = dict(script or {})
        self.connected = True
        self.fail_start = False
        self.started: List[str] = []
        self._deliveries: Set[asyncio.Task] = set()

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    async def start_command(self, command: str, listener: CommandListener) -> None:
        if self.fail_start or not self.connected:
            raise CommandExecutionError(
                f"Failed to start command on {self.name}",
                command=command,
                channel_error=True,
            )
        self.started.append(command)
        events = self.script.get(command, [("close", 0, None)])
        delivery = asyncio.get_running_loop().create_task(self._deliver(events, listener))
        self._deliveries.add(delivery)
        delivery.add_done_callback(self._deliveries.discard)

    @staticmethod
    async def _deliver(events: Sequence[tuple], listener: CommandListener) -> None:
        for event in events:
            await asyncio.sleep(0)
            kind = event[0]
            if kind == "stdout":
                listener.data_received(event[1])
            elif kind == "stderr":
                listener.stderr_received(event[1])
            elif kind == "close":
                listener.channel_closed(event[1], event[2])
            elif kind == "error":
                listener.channel_error(event[1])


@pytest.fixture
def source_session() -> FakeTransferSession:
    """Source side with the tree /a/file1.txt, /a/b/file2.txt, /c/file3.txt."""
    return FakeTransferSession(
        name="source",
        files={
            "/a/file1.txt": b"one",
            "/a/b/file2.txt": b"two",
            "/c/file3.txt": b"three",
        },
    )


@pytest.fixture
def target_session() -> FakeTransferSession:
    """Empty target side."""
    return FakeTransferSession(name="target")


@pytest.fixture
def fake_shell() -> FakeShellSession:
    return FakeShellSession()


@pytest.fixture
def password_credential() -> EndpointCredential:
    return EndpointCredential(host="source.example.com", username="root", password="secret")


@pytest.fixture
def transfer_env() -> Dict[str, str]:
    """Environment describing both endpoints."""
    return {
        "SOURCE_HOST": "source.example.com",
        "SOURCE_USER": "root",
        "SOURCE_PASSWORD": "source-secret",
        "TARGET_HOST": "target.example.com",
        "TARGET_PORT": "2222",
        "TARGET_USER": "admin",
        "TARGET_PASSWORD": "target-secret",
    }


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo setup_logging so caplog keeps seeing package records."""
    yield
    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True
