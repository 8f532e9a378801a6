"""
Recursive directory synchronization between remote sessions and local disk.

Downloads walk the source tree depth-first, one subtree at a time, and hand
every file to the shared work queue. Uploads walk the local tree the same
way but put each file in turn, without the queue. The two directions
therefore differ: downloads overlap up to the queue's concurrency,
uploads are strictly serial.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import List, Optional, Tuple

from migration_transport.core.error_handler import ErrorContext, ErrorHandler
from migration_transport.core.exceptions import EnumerationError, TransferError
from migration_transport.transfer.base import (
    TransferDirection,
    TransferResult,
    TransferSession,
    TransferStatus,
    TransferTask,
)
from migration_transport.transfer.local import LocalFilesystem
from migration_transport.transfer.queue import BoundedWorkQueue
from migration_transport.utils.helpers import remote_join

logger = logging.getLogger(__name__)

DOWNLOAD_PRIORITY = 2


@dataclass
class _Traversal:
    """Accumulates what one top-level operation did until it settles."""
    source: str
    destination: str
    direction: TransferDirection
    started_at: datetime = field(default_factory=datetime.now)
    transferred_files: List[str] = field(default_factory=list)
    failed_files: List[str] = field(default_factory=list)
    visited_directories: List[str] = field(default_factory=list)
    submitted_tasks: int = 0
    first_error: Optional[Exception] = None

    def record_error(self, error: Exception) -> None:
        if self.first_error is None:
            self.first_error = error

    def to_result(self) -> TransferResult:
        return TransferResult(
            status=TransferStatus.COMPLETED if self.first_error is None else TransferStatus.FAILED,
            source=self.source,
            destination=self.destination,
            direction=self.direction,
            transferred_files=tuple(self.transferred_files),
            failed_files=tuple(self.failed_files),
            visited_directories=tuple(self.visited_directories),
            error=self.first_error,
            started_at=self.started_at,
            finished_at=datetime.now(),
        )


class DirectorySynchronizer:
    """
    Copies directory trees from the source session and to the target session.

    Sessions and the work queue are injected so that several synchronizers
    (or tests) can share or substitute them.
    """

    def __init__(
        self,
        source: TransferSession,
        target: TransferSession,
        queue: BoundedWorkQueue,
        local_fs: Optional[LocalFilesystem] = None,
        download_priority: int = DOWNLOAD_PRIORITY,
        error_handler: Optional[ErrorHandler] = None
    ):
        """
        Args:
            source: Session downloads are read from
            target: Session uploads are written to
            queue: Scheduler for concurrent leaf downloads
            local_fs: Local disk access, replaceable in tests
            download_priority: Queue priority of leaf download tasks
            error_handler: Classifier used to log failures
        """
        self.source = source
        self.target = target
        self.queue = queue
        self.local_fs = local_fs or LocalFilesystem()
        self.download_priority = download_priority
        self.error_handler = error_handler or ErrorHandler(logger)

    def _record_failure(self, traversal: _Traversal, error: Exception, operation: str, path: str) -> None:
        self.error_handler.handle_error(error, ErrorContext(operation=operation, path=path))
        traversal.record_error(error)

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    async def download_directory(self, remote_dir: str, local_dir: str) -> TransferResult:
        """
        Download a remote tree into ``local_dir``.

        Returns once the whole tree has been enumerated *and* the work queue
        is idle, so every leaf task has settled.
        """
        traversal = _Traversal(remote_dir, local_dir, TransferDirection.DOWNLOAD)

        await self._walk_download(remote_dir, local_dir, traversal)
        await self.queue.wait_idle()

        result = traversal.to_result()
        if result.success:
            logger.info(
                f"Finished downloading {remote_dir} -> {local_dir} "
                f"({len(result.transferred_files)} files)"
            )
        else:
            logger.warning(
                f"Finished downloading {remote_dir} -> {local_dir} with failures "
                f"({len(result.transferred_files)} ok, {len(result.failed_files)} failed)"
            )
        return result

    async def _walk_download(self, remote_dir: str, local_dir: str, traversal: _Traversal) -> None:
        traversal.visited_directories.append(remote_dir)

        try:
            self.local_fs.makedirs(local_dir)
            entries = await self.source.list(remote_dir)
        except Exception as e:
            self._record_failure(
                traversal,
                EnumerationError(f"Failed to enumerate {remote_dir}: {e}", path=remote_dir),
                "download enumeration",
                remote_dir,
            )
            return

        for entry in entries:
            remote_path = remote_join(remote_dir, entry.name)
            local_path = os.path.join(local_dir, entry.name)

            if entry.is_directory:
                # Finish enumerating this subtree before looking at the next sibling.
                await self._walk_download(remote_path, local_path, traversal)
            else:
                self._submit_download(
                    TransferTask(
                        source=remote_path,
                        destination=local_path,
                        direction=TransferDirection.DOWNLOAD,
                        priority=self.download_priority,
                    ),
                    traversal,
                )

    def _submit_download(self, task: TransferTask, traversal: _Traversal) -> None:
        traversal.submitted_tasks += 1
        self.queue.submit(
            partial(self._run_download, task, traversal),
            priority=task.priority,
            label=task.describe(),
        )

    async def _run_download(self, task: TransferTask, traversal: _Traversal) -> None:
        try:
            await self.source.get(task.source, task.destination)
        except Exception as e:
            traversal.failed_files.append(task.source)
            self._record_failure(
                traversal,
                TransferError(
                    f"Failed to download {task.source}: {e}",
                    source=task.source,
                    destination=task.destination,
                    direction=task.direction.value,
                ),
                "download",
                task.source,
            )
            return

        traversal.transferred_files.append(task.source)
        logger.debug(
            f"Downloaded {task.destination} (pending={self.queue.pending} active={self.queue.active})"
        )

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    async def upload_directory(self, local_dir: str, remote_dir: str) -> TransferResult:
        """
        Upload a local tree into ``remote_dir`` on the target session.

        Files are put one at a time in local listing order; the next file
        starts only after the previous put resolved. The work queue is not
        involved.
        """
        traversal = _Traversal(local_dir, remote_dir, TransferDirection.UPLOAD)

        await self._walk_upload(local_dir, remote_dir, traversal)

        result = traversal.to_result()
        if result.success:
            logger.info(
                f"Finished uploading {local_dir} -> {remote_dir} "
                f"({len(result.transferred_files)} files)"
            )
        else:
            logger.warning(
                f"Finished uploading {local_dir} -> {remote_dir} with failures "
                f"({len(result.transferred_files)} ok, {len(result.failed_files)} failed)"
            )
        return result

    async def ensure_remote_directory(self, remote_dir: str) -> None:
        """Create ``remote_dir`` on the target unless it already exists."""
        if not await self.target.exists(remote_dir):
            await self.target.mkdir(remote_dir, recursive=True)

    async def _walk_upload(self, local_dir: str, remote_dir: str, traversal: _Traversal) -> None:
        traversal.visited_directories.append(local_dir)

        try:
            await self.ensure_remote_directory(remote_dir)
            names = self.local_fs.list_dir(local_dir)
        except Exception as e:
            self._record_failure(
                traversal,
                EnumerationError(f"Failed to enumerate {local_dir}: {e}", path=local_dir),
                "upload enumeration",
                local_dir,
            )
            return

        for name in names:
            local_path = os.path.join(local_dir, name)
            remote_path = remote_join(remote_dir, name)

            if self.local_fs.is_dir(local_path):
                await self._walk_upload(local_path, remote_path, traversal)
            else:
                await self._put_file(local_path, remote_path, traversal)

    async def _put_file(self, local_path: str, remote_path: str, traversal: _Traversal) -> None:
        try:
            await self.target.put(local_path, remote_path)
        except Exception as e:
            traversal.failed_files.append(local_path)
            self._record_failure(
                traversal,
                TransferError(
                    f"Failed to upload {local_path} -> {remote_path}: {e}",
                    source=local_path,
                    destination=remote_path,
                    direction=TransferDirection.UPLOAD.value,
                ),
                "upload",
                local_path,
            )
            return

        traversal.transferred_files.append(local_path)
        logger.info(f"Uploaded file: {local_path} to {remote_path}")

    async def upload_file(self, local_path: str, remote_path: str) -> TransferResult:
        """Upload one file to the target session."""
        traversal = _Traversal(local_path, remote_path, TransferDirection.UPLOAD)
        await self._put_file(local_path, remote_path, traversal)
        return traversal.to_result()

    async def folder_exists(self, remote_dir: str) -> bool:
        """Whether ``remote_dir`` already exists on the target session."""
        return await self.target.exists(remote_dir)

    # ------------------------------------------------------------------
    # Source -> local -> target
    # ------------------------------------------------------------------

    async def relay_directory(
        self,
        source_dir: str,
        staging_dir: str,
        target_dir: Optional[str] = None
    ) -> Tuple[TransferResult, TransferResult]:
        """
        Copy a tree from the source to the target through a local staging directory.

        The upload starts once the download has settled, even if some
        leaves failed; the caller inspects both results.
        """
        download = await self.download_directory(source_dir, staging_dir)
        upload = await self.upload_directory(staging_dir, target_dir or source_dir)
        return download, upload
