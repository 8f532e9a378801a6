"""Local filesystem operations used by the directory synchronizer."""

import os
from pathlib import Path
from typing import List, Union

PathLike = Union[str, Path]


class LocalFilesystem:
    """
    Thin wrapper over the local disk.

    Calls are synchronous; local I/O is treated as reliable and fast
    compared to the remote side.
    """

    def makedirs(self, path: PathLike) -> None:
        os.makedirs(path, exist_ok=True)

    def list_dir(self, path: PathLike) -> List[str]:
        """Entry names of ``path``, sorted so upload order is reproducible."""
        return sorted(os.listdir(path))

    def is_dir(self, path: PathLike) -> bool:
        return os.path.isdir(path)
