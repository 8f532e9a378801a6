"""
SSH/SFTP transfer session implemented with paramiko.

Paramiko is blocking, so every network call is pushed to a worker thread
with ``asyncio.to_thread``; the event loop itself stays single-threaded.
"""

import asyncio
import io
import posixpath
import stat
from typing import Any, Dict, List, Optional

import paramiko
from paramiko import AutoAddPolicy, RejectPolicy, SFTPClient, SSHClient

from migration_transport.core.exceptions import ConnectionError
from migration_transport.models.config import EndpointCredential, HostKeyPolicy
from migration_transport.transfer.base import EntryType, RemoteEntry, RemoteStat, TransferSession

_KEY_CLASSES = (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey)


def load_private_key(key_data: str, passphrase: Optional[str] = None) -> paramiko.PKey:
    """
    Parse private key material of any supported type.

    Raises:
        paramiko.SSHException: If no key class accepts the material
    """
    errors = []
    for key_class in _KEY_CLASSES:
        try:
            return key_class.from_private_key(io.StringIO(key_data), password=passphrase)
        except paramiko.SSHException as e:
            errors.append(f"{key_class.__name__}: {e}")
    raise paramiko.SSHException(f"Unsupported private key ({'; '.join(errors)})")


def build_connect_params(
    credential: EndpointCredential,
    timeout: Optional[float] = None
) -> Dict[str, Any]:
    """Translate a credential into ``SSHClient.connect`` keyword arguments."""
    connect_params: Dict[str, Any] = {
        'hostname': credential.host,
        'port': credential.port,
        'username': credential.username,
        'timeout': timeout,
        'look_for_keys': False,
        'allow_agent': False,
    }

    if credential.password:
        connect_params['password'] = credential.password

    key_data = credential.load_private_key()
    if key_data:
        connect_params['pkey'] = load_private_key(key_data, credential.passphrase)

    return connect_params


def open_ssh_client(
    credential: EndpointCredential,
    timeout: Optional[float] = None,
    host_key_policy: HostKeyPolicy = HostKeyPolicy.AUTO_ADD
) -> SSHClient:
    """Open and authenticate an SSH client (blocking)."""
    client = SSHClient()
    client.load_system_host_keys()
    if host_key_policy == HostKeyPolicy.REJECT:
        client.set_missing_host_key_policy(RejectPolicy())
    else:
        client.set_missing_host_key_policy(AutoAddPolicy())

    try:
        client.connect(**build_connect_params(credential, timeout))
    except Exception:
        client.close()
        raise
    return client


class SftpSession(TransferSession):
    """
    Secure transfer session over one paramiko SFTP channel.

    Listing, get, put, exists, mkdir and stat have no timeout; a hung
    peer hangs the awaiting coroutine.
    """

    def __init__(
        self,
        credential: EndpointCredential,
        name: str = "sftp",
        connect_timeout: Optional[float] = 30.0,
        host_key_policy: HostKeyPolicy = HostKeyPolicy.AUTO_ADD
    ):
        """
        Initialize the session without connecting.

        Args:
            credential: Endpoint the session talks to
            name: Role name used in log messages (e.g. "source", "target")
            connect_timeout: TCP connect timeout in seconds, None to wait forever
            host_key_policy: Policy for host keys missing from known_hosts
        """
        super().__init__(name)
        self.credential = credential
        self.connect_timeout = connect_timeout
        self.host_key_policy = host_key_policy

        self._ssh_client: Optional[SSHClient] = None
        self._sftp_client: Optional[SFTPClient] = None

    @property
    def is_connected(self) -> bool:
        if self._ssh_client is None or self._sftp_client is None:
            return False
        transport = self._ssh_client.get_transport()
        return transport is not None and transport.is_active()

    async def connect(self) -> None:
        """Establish the SSH connection and open the SFTP channel."""
        if self.is_connected:
            return

        try:
            self._ssh_client = await asyncio.to_thread(
                open_ssh_client,
                self.credential,
                self.connect_timeout,
                self.host_key_policy
            )
            self._sftp_client = await asyncio.to_thread(self._ssh_client.open_sftp)
        except Exception as e:
            await self.close()
            raise ConnectionError(
                f"Failed to connect {self.name} SFTP to {self.credential.address}: {e}",
                host=self.credential.host
            ) from e

        self.logger.info(f"Connected {self.name} SFTP ({self.credential.address})")

    async def close(self) -> None:
        """Close the SFTP channel and the SSH connection."""
        if self._sftp_client:
            self._sftp_client.close()
            self._sftp_client = None

        if self._ssh_client:
            self._ssh_client.close()
            self._ssh_client = None
            self.logger.debug(f"{self.name} SFTP connection closed")

    def _require_sftp(self) -> SFTPClient:
        if self._sftp_client is None or self._ssh_client is None:
            raise ConnectionError(
                f"{self.name} SFTP session is not connected",
                host=self.credential.host
            )
        transport = self._ssh_client.get_transport()
        if transport is None or not transport.is_active():
            raise ConnectionError(
                f"{self.name} SFTP session to {self.credential.address} has dropped",
                host=self.credential.host
            )
        return self._sftp_client

    async def list(self, remote_dir: str) -> List[RemoteEntry]:
        sftp = self._require_sftp()
        attributes = await asyncio.to_thread(sftp.listdir_attr, remote_dir)
        return [
            RemoteEntry(
                name=attr.filename,
                type=EntryType.DIRECTORY if stat.S_ISDIR(attr.st_mode or 0) else EntryType.FILE,
            )
            for attr in attributes
        ]

    async def get(self, remote_path: str, local_path: str) -> None:
        sftp = self._require_sftp()
        await asyncio.to_thread(sftp.get, remote_path, local_path)

    async def put(self, local_path: str, remote_path: str) -> None:
        sftp = self._require_sftp()
        await asyncio.to_thread(sftp.put, local_path, remote_path)

    async def exists(self, remote_path: str) -> bool:
        sftp = self._require_sftp()
        try:
            await asyncio.to_thread(sftp.stat, remote_path)
        except FileNotFoundError:
            return False
        return True

    async def stat(self, remote_path: str) -> RemoteStat:
        sftp = self._require_sftp()
        attributes = await asyncio.to_thread(sftp.stat, remote_path)
        return RemoteStat(
            is_directory=stat.S_ISDIR(attributes.st_mode or 0),
            size=attributes.st_size,
        )

    async def mkdir(self, remote_path: str, recursive: bool = False) -> None:
        sftp = self._require_sftp()

        if not recursive:
            await asyncio.to_thread(sftp.mkdir, remote_path)
            return

        await self._mkdir_recursive(sftp, posixpath.normpath(remote_path))

    async def _mkdir_recursive(self, sftp: SFTPClient, remote_path: str) -> None:
        """Create ``remote_path`` and any missing parents; existing directories are fine."""
        if remote_path in ('', '/', '.'):
            return

        try:
            attributes = await asyncio.to_thread(sftp.stat, remote_path)
        except FileNotFoundError:
            parent_dir = posixpath.dirname(remote_path)
            if parent_dir and parent_dir != remote_path:
                await self._mkdir_recursive(sftp, parent_dir)
            await asyncio.to_thread(sftp.mkdir, remote_path)
            return

        if not stat.S_ISDIR(attributes.st_mode or 0):
            raise NotADirectoryError(f"Remote path exists and is not a directory: {remote_path}")
