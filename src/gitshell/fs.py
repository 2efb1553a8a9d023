"""File-system seam used for every working-tree read and write.

The object-store adapter, the subcommand handlers and the rollback
engine all go through a :class:`FileSystem` so an embedding host can
swap the disk for another backing store.
"""

from __future__ import annotations

import os
import shutil
from typing import Protocol


class FileSystem(Protocol):
    """Working-tree file operations, addressed by absolute path."""

    def stat(self, path: str) -> os.stat_result:
        """Return the ``lstat`` result for *path*.

        Raises:
            FileNotFoundError: If *path* does not exist.
        """
        ...

    def exists(self, path: str) -> bool:
        ...

    def is_dir(self, path: str) -> bool:
        ...

    def read_file(self, path: str) -> bytes:
        ...

    def write_file(self, path: str, data: bytes, mode: int | None = None) -> None:
        """Write *data* to *path*, creating missing parent directories.

        *mode* is a git filemode; ``0o100755`` sets the executable bit and
        ``0o120000`` writes a symlink whose target is *data*.
        """
        ...

    def readlink(self, path: str) -> str:
        ...

    def unlink(self, path: str) -> None:
        ...

    def mkdir(self, path: str, parents: bool = False) -> None:
        ...

    def readdir(self, path: str) -> list[str]:
        """Return the sorted entry names of directory *path*."""
        ...

    def rmtree(self, path: str) -> None:
        ...


class LocalFileSystem:
    """:class:`FileSystem` backed by the host disk."""

    def stat(self, path: str) -> os.stat_result:
        return os.lstat(path)

    def exists(self, path: str) -> bool:
        return os.path.lexists(path)

    def is_dir(self, path: str) -> bool:
        return os.path.isdir(path) and not os.path.islink(path)

    def read_file(self, path: str) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    def write_file(self, path: str, data: bytes, mode: int | None = None) -> None:
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        if os.path.lexists(path) and (
            os.path.islink(path) or mode == 0o120000
        ):
            os.unlink(path)
        if mode == 0o120000:
            os.symlink(data.decode(), path)
            return
        with open(path, "wb") as f:
            f.write(data)
        if mode == 0o100755:
            os.chmod(path, 0o755)
        elif mode == 0o100644:
            os.chmod(path, 0o644)

    def readlink(self, path: str) -> str:
        return os.readlink(path)

    def unlink(self, path: str) -> None:
        os.unlink(path)
        _prune_empty_dirs(os.path.dirname(path))

    def mkdir(self, path: str, parents: bool = False) -> None:
        if parents:
            os.makedirs(path, exist_ok=True)
        else:
            os.mkdir(path)

    def readdir(self, path: str) -> list[str]:
        return sorted(os.listdir(path))

    def rmtree(self, path: str) -> None:
        shutil.rmtree(path)


def _prune_empty_dirs(path: str) -> None:
    """Remove *path* and its parents while they are empty, stopping at a repo root."""
    while path and not os.path.exists(os.path.join(path, ".git")):
        try:
            os.rmdir(path)
        except OSError:
            return
        path = os.path.dirname(path)
