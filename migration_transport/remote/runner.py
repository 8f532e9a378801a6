"""
Remote command runner.

Turns the event stream of a shell session into one awaited outcome: a
``RemoteExecutionResult`` when the command exits with code 0, otherwise a
``CommandExecutionError``. Output written to stderr is logged and kept but
never fails a command on its own.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from migration_transport.core.exceptions import CommandExecutionError
from migration_transport.remote.shell import ShellSession

logger = logging.getLogger(__name__)

OutputSink = Callable[[bytes], object]


class RunnerState(str, Enum):
    """Lifecycle of the most recent command issued through a runner."""
    IDLE = "idle"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CHANNEL_ERROR = "channel_error"


@dataclass(frozen=True)
class RemoteExecutionResult:
    """Outcome of a command that exited with code 0."""
    exit_code: int
    signal: Optional[str]
    stdout: str
    stderr: str


def _decode(chunks: List[bytes]) -> str:
    return b"".join(chunks).decode("utf-8", errors="replace")


class _ExecutionCollector:
    """
    Listener that buffers a command's output and settles a future.

    The future is assigned at most once; events arriving after that are
    ignored.
    """

    def __init__(
        self,
        command: str,
        shell_name: str,
        future: asyncio.Future,
        stdout_sink: Optional[OutputSink] = None,
        stderr_sink: Optional[OutputSink] = None,
        keep_stdout: bool = True
    ):
        self.command = command
        self.shell_name = shell_name
        self.future = future
        self.stdout_sink = stdout_sink
        self.stderr_sink = stderr_sink
        self.keep_stdout = keep_stdout
        self._stdout: List[bytes] = []
        self._stderr: List[bytes] = []

    @property
    def stdout(self) -> str:
        return _decode(self._stdout)

    @property
    def stderr(self) -> str:
        return _decode(self._stderr)

    def data_received(self, data: bytes) -> None:
        if self.future.done():
            return
        if self.keep_stdout:
            self._stdout.append(data)
        self._forward(self.stdout_sink, data)

    def stderr_received(self, data: bytes) -> None:
        if self.future.done():
            return
        self._stderr.append(data)
        logger.warning(f"STDERR: {data.decode('utf-8', errors='replace').rstrip()}")
        self._forward(self.stderr_sink, data)

    def _forward(self, sink: Optional[OutputSink], data: bytes) -> None:
        if sink is None:
            return
        try:
            sink(data)
        except Exception as e:
            self.future.set_exception(CommandExecutionError(
                f"Output handler for command on {self.shell_name} failed: {e}",
                command=self.command,
                stdout=self.stdout,
                stderr=self.stderr,
            ))

    def channel_closed(self, exit_code: int, signal: Optional[str]) -> None:
        if self.future.done():
            return

        if exit_code == 0:
            self.future.set_result(RemoteExecutionResult(
                exit_code=exit_code,
                signal=signal,
                stdout=self.stdout,
                stderr=self.stderr,
            ))
            return

        self.future.set_exception(CommandExecutionError(
            f"Remote command on {self.shell_name} exited with code {exit_code} and signal {signal}",
            command=self.command,
            exit_code=exit_code,
            signal=signal,
            stdout=self.stdout,
            stderr=self.stderr,
        ))

    def channel_error(self, error: Exception) -> None:
        if self.future.done():
            return
        self.future.set_exception(CommandExecutionError(
            f"Channel error while running command on {self.shell_name}: {error}",
            command=self.command,
            stdout=self.stdout,
            stderr=self.stderr,
            channel_error=True,
        ))


class RemoteCommandRunner:
    """
    Runs commands over one shell session, one at a time.

    ``state`` follows IDLE -> EXECUTING -> SUCCEEDED | FAILED | CHANNEL_ERROR
    for each command and stays in its terminal value until the next one.
    """

    def __init__(self, shell: ShellSession):
        self.shell = shell
        self.state = RunnerState.IDLE
        self._lock = asyncio.Lock()

    async def run(
        self,
        command: str,
        stdout_sink: Optional[OutputSink] = None,
        stderr_sink: Optional[OutputSink] = None,
        keep_stdout: bool = True
    ) -> RemoteExecutionResult:
        """
        Execute ``command`` and wait for it to exit.

        Args:
            command: Shell command line run on the remote host
            stdout_sink: Called with every stdout chunk as it arrives
            stderr_sink: Called with every stderr chunk as it arrives
            keep_stdout: Aggregate stdout into the result

        Returns:
            The aggregated output of a command that exited with code 0

        Raises:
            CommandExecutionError: On a nonzero exit, a failing sink, or a
                channel failure (``channel_error=True``)
        """
        async with self._lock:
            loop = asyncio.get_running_loop()
            collector = _ExecutionCollector(
                command,
                self.shell.name,
                loop.create_future(),
                stdout_sink=stdout_sink,
                stderr_sink=stderr_sink,
                keep_stdout=keep_stdout,
            )

            self.state = RunnerState.EXECUTING
            logger.debug(f"Executing on {self.shell.name}: {command}")

            try:
                await self.shell.start_command(command, collector)
            except CommandExecutionError as e:
                self.state = RunnerState.CHANNEL_ERROR
                logger.error(e.message)
                raise
            except Exception as e:
                self.state = RunnerState.CHANNEL_ERROR
                logger.error(f"Failed to start command on {self.shell.name}: {e}")
                raise CommandExecutionError(
                    f"Failed to start command on {self.shell.name}: {e}",
                    command=command,
                    channel_error=True,
                ) from e

            try:
                result = await collector.future
            except CommandExecutionError as e:
                self.state = RunnerState.CHANNEL_ERROR if e.channel_error else RunnerState.FAILED
                logger.error(e.message)
                raise

            self.state = RunnerState.SUCCEEDED
            return result

    async def run_to_file(self, command: str, local_path: str) -> RemoteExecutionResult:
        """
        Execute ``command`` and stream its stdout into ``local_path``.

        Parent directories are created. Stdout is not kept in the result.
        """
        parent_dir = os.path.dirname(local_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        with open(local_path, "wb") as output:
            result = await self.run(command, stdout_sink=output.write, keep_stdout=False)

        logger.info(f"Saved output of command on {self.shell.name} to {local_path}")
        return result

    async def capture(self, command: str) -> str:
        """Execute ``command`` and return its stdout without surrounding whitespace."""
        result = await self.run(command)
        return result.stdout.strip()
